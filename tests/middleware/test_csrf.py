"""
tests/middleware/test_csrf.py
"""

from concurrent.futures import ThreadPoolExecutor
from unittest.mock import patch

import pytest
from pydantic import ValidationError

from stone.middleware.csrf import (
    DEFAULT_CSRF_CONFIG,
    TOKEN_ALPHABET,
    CSRFConfig,
    FormLookup,
    HeaderLookup,
    QueryLookup,
    generate_token,
    parse_token_lookup,
    validate_token,
)

SAFE_METHODS = ["GET", "HEAD", "OPTIONS", "TRACE"]


# Token helpers


def test_alphabet_is_62_alphanumerics():
    assert len(TOKEN_ALPHABET) == 62
    assert len(set(TOKEN_ALPHABET)) == 62
    assert TOKEN_ALPHABET.isalnum()


@pytest.mark.parametrize("length", [1, 16, 32, 64])
def test_generate_token_length_and_alphabet(length):
    token = generate_token(length)

    assert len(token) == length
    assert set(token) <= set(TOKEN_ALPHABET)


def test_generate_token_from_many_threads():
    with ThreadPoolExecutor(max_workers=8) as executor:
        tokens = list(executor.map(lambda _: generate_token(32), range(200)))

    assert all(len(t) == 32 for t in tokens)
    assert len(set(tokens)) == len(tokens)


def test_validate_token():
    token = generate_token(16)

    assert validate_token(token, token)
    assert validate_token("", "")
    assert not validate_token(token, token[:-1])
    assert not validate_token(token, token + "a")
    assert not validate_token(token, "")
    assert not validate_token("abc", "abd")


def test_validate_token_uses_constant_time_compare():
    with patch(
        "stone.middleware.csrf.secrets.compare_digest", return_value=True
    ) as compare:
        assert validate_token("a", "b")

    compare.assert_called_once_with(b"a", b"b")


# Configuration


def test_config_defaults():
    config = CSRFConfig().with_defaults()

    assert config.token_length == 32
    assert config.token_lookup == "header:X-CSRF-Token"
    assert config.context_key == "csrf"
    assert config.cookie_name == "_csrf"
    assert config.cookie_max_age == 86400
    assert config.cookie_domain == ""
    assert config.cookie_path == ""
    assert config.cookie_secure is False
    assert config.cookie_http_only is False


def test_config_keeps_explicit_values():
    config = CSRFConfig(
        token_length=16,
        token_lookup="form:csrf",
        cookie_name="xsrf",
        cookie_max_age=60,
    ).with_defaults()

    assert config.token_length == 16
    assert config.token_lookup == "form:csrf"
    assert config.cookie_name == "xsrf"
    assert config.cookie_max_age == 60
    assert config.context_key == DEFAULT_CSRF_CONFIG.context_key


def test_config_is_immutable():
    config = CSRFConfig()
    with pytest.raises(ValidationError):
        config.token_length = 8


def test_config_rejects_negative_length():
    with pytest.raises(ValidationError):
        CSRFConfig(token_length=-1)


@pytest.mark.parametrize("key", ["request_id", "_state"])
def test_config_rejects_reserved_context_key(key):
    with pytest.raises(ValidationError, match="reserved"):
        CSRFConfig(context_key=key)


@pytest.mark.parametrize("same_site", ["lax", "strict", "none", None])
def test_config_accepts_same_site(same_site):
    assert CSRFConfig(cookie_same_site=same_site).cookie_same_site == same_site


@pytest.mark.parametrize("same_site", ["sideways", "Lax", ""])
def test_config_rejects_unknown_same_site(same_site):
    with pytest.raises(ValidationError):
        CSRFConfig(cookie_same_site=same_site)


@pytest.mark.parametrize(
    "spec, expected",
    [
        ("header:X-CSRF-Token", HeaderLookup("X-CSRF-Token")),
        ("form:csrf", FormLookup("csrf")),
        ("query:_csrf", QueryLookup("_csrf")),
        ("header:X:Odd", HeaderLookup("X:Odd")),
    ],
)
def test_parse_token_lookup(spec, expected):
    assert parse_token_lookup(spec) == expected


@pytest.mark.parametrize("spec", ["header", "header:", "cookie:csrf", ""])
def test_parse_token_lookup_rejects_malformed(spec):
    with pytest.raises(ValueError):
        parse_token_lookup(spec)


def test_middleware_rejects_malformed_lookup(csrf_client):
    with pytest.raises(ValueError):
        csrf_client(CSRFConfig(token_lookup="nocolon")).get("/echo")


# Token issue


def test_safe_request_mints_token(csrf_client, issued_cookie):
    response = csrf_client().get("/echo")

    assert response.status_code == 200
    cookie = issued_cookie(response)
    assert len(cookie.value) == 32
    assert set(cookie.value) <= set(TOKEN_ALPHABET)
    assert response.json()["csrf"] == cookie.value


def test_existing_cookie_is_reused(csrf_client, issued_cookie):
    response = csrf_client().get("/echo", headers={"Cookie": "_csrf=abc123"})

    assert issued_cookie(response).value == "abc123"
    assert response.json()["csrf"] == "abc123"


def test_empty_cookie_is_replaced(csrf_client, issued_cookie):
    response = csrf_client().get("/echo", headers={"Cookie": "_csrf="})

    assert len(issued_cookie(response).value) == 32


def test_token_length_round_trip(csrf_client, issued_cookie):
    response = csrf_client(CSRFConfig(token_length=16)).get("/echo")

    token = issued_cookie(response).value
    assert len(token) == 16
    assert response.json()["csrf"] == token
    assert validate_token(token, token)


def test_zero_token_length_uses_default(csrf_client, issued_cookie):
    response = csrf_client(CSRFConfig(token_length=0)).get("/echo")

    assert len(issued_cookie(response).value) == 32


def test_custom_context_key(csrf_client):
    config = CSRFConfig(context_key="xsrf_token")
    response = csrf_client(config).get("/echo")

    assert response.json()["csrf"]


def test_cookie_attributes(csrf_client, issued_cookie):
    config = CSRFConfig(
        cookie_name="xsrf",
        cookie_path="/app",
        cookie_domain="example.com",
        cookie_max_age=60,
        cookie_secure=True,
        cookie_http_only=True,
    )
    response = csrf_client(config).get("/echo")

    cookie = issued_cookie(response, "xsrf")
    assert cookie is not None
    assert cookie["path"] == "/app"
    assert cookie["domain"] == "example.com"
    assert cookie["secure"]
    assert cookie["httponly"]
    assert cookie["expires"]


def test_cookie_without_path_or_domain(csrf_client):
    response = csrf_client().get("/echo")

    header = response.headers["set-cookie"].lower()
    assert "path=" not in header
    assert "domain=" not in header
    assert "secure" not in header
    assert "httponly" not in header
    assert "expires=" in header


def test_vary_cookie_is_appended(csrf_client):
    response = csrf_client().get("/echo")

    vary = response.headers.get_list("vary")
    assert "Origin" in vary
    assert "Cookie" in vary


@pytest.mark.parametrize("method", ["GET", "POST"])
def test_failing_handler_still_gets_cookie(
    method, csrf_client, issued_cookie
):
    headers = {"Cookie": "_csrf=secret", "X-CSRF-Token": "secret"}
    response = csrf_client().request(method, "/boom", headers=headers)

    assert response.status_code == 500
    body = response.json()
    assert body["success"] is False
    assert body["code"] == "SYS_001"
    assert issued_cookie(response).value == "secret"
    assert "Cookie" in response.headers.get_list("vary")


# Safe methods


@pytest.mark.parametrize("method", SAFE_METHODS)
def test_safe_methods_skip_validation(method, csrf_client, issued_cookie):
    config = CSRFConfig(token_lookup="query:csrf")

    with patch("stone.middleware.csrf.validate_token") as validate:
        response = csrf_client(config).request(
            method, "/echo", headers={"Cookie": "_csrf=known"}
        )

    assert response.status_code == 200
    validate.assert_not_called()
    assert issued_cookie(response).value == "known"


def test_consecutive_safe_requests_never_rejected(csrf_client):
    client = csrf_client()
    for _ in range(2):
        response = client.get("/echo", headers={"Cookie": "_csrf=same"})
        assert response.status_code == 200
        assert response.json()["csrf"] == "same"


# Header lookup


@pytest.mark.parametrize("method", ["POST", "PUT", "DELETE"])
def test_header_token_matching_cookie_passes(method, csrf_client):
    response = csrf_client().request(
        method,
        "/echo",
        headers={"Cookie": "_csrf=secret", "X-CSRF-Token": "secret"},
    )

    assert response.status_code == 200
    assert response.json()["csrf"] == "secret"


def test_header_token_mismatch_is_forbidden(csrf_client, issued_cookie):
    calls = []
    response = csrf_client(calls=calls).post(
        "/echo",
        headers={"Cookie": "_csrf=secret", "X-CSRF-Token": "guess"},
    )

    assert response.status_code == 403
    body = response.json()
    assert body["success"] is False
    assert body["error"] == "csrf token is invalid"
    assert body["code"] == "CSRF_002"
    assert calls == []
    assert issued_cookie(response) is None


def test_missing_header_is_compared_as_empty(csrf_client):
    calls = []
    response = csrf_client(calls=calls).post(
        "/echo", headers={"Cookie": "_csrf=secret"}
    )

    assert response.status_code == 403
    assert calls == []


def test_post_without_cookie_is_rejected(csrf_client):
    response = csrf_client().post(
        "/echo", headers={"X-CSRF-Token": "anything"}
    )

    assert response.status_code == 403


def test_token_survives_across_requests(csrf_client, issued_cookie):
    client = csrf_client()
    token = issued_cookie(client.get("/echo")).value

    response = client.post(
        "/echo",
        headers={"Cookie": f"_csrf={token}", "X-CSRF-Token": token},
    )

    assert response.status_code == 200
    assert issued_cookie(response).value == token


# Form lookup


def test_form_token_passes_and_body_stays_readable(csrf_client):
    config = CSRFConfig(token_lookup="form:csrf")
    response = csrf_client(config).post(
        "/form",
        data={"csrf": "secret", "name": "stone"},
        headers={"Cookie": "_csrf=secret"},
    )

    assert response.status_code == 200
    assert response.json() == {"csrf": "secret", "name": "stone"}


@pytest.mark.parametrize("data", [{}, {"csrf": ""}, {"other": "secret"}])
def test_form_token_missing_or_empty(data, csrf_client):
    calls = []
    config = CSRFConfig(token_lookup="form:csrf")
    response = csrf_client(config, calls).post(
        "/form", data=data, headers={"Cookie": "_csrf=secret"}
    )

    assert response.status_code == 400
    body = response.json()
    assert body["error"] == "empty csrf token in form param"
    assert body["code"] == "CSRF_001"
    assert calls == []


def test_form_token_mismatch(csrf_client):
    config = CSRFConfig(token_lookup="form:csrf")
    response = csrf_client(config).post(
        "/form", data={"csrf": "guess"}, headers={"Cookie": "_csrf=secret"}
    )

    assert response.status_code == 403


# Query lookup


def test_query_token_passes(csrf_client):
    config = CSRFConfig(token_lookup="query:csrf")
    response = csrf_client(config).delete(
        "/echo?csrf=secret", headers={"Cookie": "_csrf=secret"}
    )

    assert response.status_code == 200


@pytest.mark.parametrize("url", ["/echo", "/echo?csrf="])
def test_query_token_missing_or_empty(url, csrf_client):
    calls = []
    config = CSRFConfig(token_lookup="query:csrf")
    response = csrf_client(config, calls).put(
        url, headers={"Cookie": "_csrf=secret"}
    )

    assert response.status_code == 400
    assert response.json()["error"] == "empty csrf token in query param"
    assert calls == []
