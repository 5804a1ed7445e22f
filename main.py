import uvicorn

from stone import create_app
from stone.config import get_settings

app = create_app()

app.description = "Registration API protected by a CSRF cookie"
app.license_info = {
    "name": "MIT",
    "url": "https://opensource.org/licenses/MIT",
}


if __name__ == "__main__":
    settings = get_settings()
    # uvicorn drains in-flight requests on SIGTERM/SIGINT
    uvicorn.run(
        "main:app",
        host=settings.HOST,
        port=settings.PORT,
        log_config=None,
        timeout_graceful_shutdown=30,
    )
