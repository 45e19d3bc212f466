"""
Heuristics shared by the detectors: what counts as an auth cookie, a login
URL, a token-bearing response and so on. All checks are plain substring tests
over URLs, header names and bodies.
"""

import re

from .utils import bearer_token, find_string_field

API_KEY_HEADERS = ("x-api-key", "api-key", "apikey")
SESSION_API_KEY_HEADERS = API_KEY_HEADERS + ("x-api-token", "api-token")

TOKEN_RESPONSE_KEYS = ("token", "access_token", "accessToken")

LOGIN_PATHS = ("/login", "/signin", "/auth/login")

JWT_IN_TEXT = re.compile(r"eyJ[A-Za-z0-9_-]+\.eyJ[A-Za-z0-9_-]+\.[A-Za-z0-9_-]*")


def is_auth_cookie(name):
    lower = name.lower()
    return (
        "session" in lower
        or "auth" in lower
        or "token" in lower
        or "jwt" in lower
        or lower == "sid"
    )


def is_session_cookie(name):
    """Broader cookie check used for session tracking."""
    lower = name.lower()
    return (
        is_auth_cookie(name)
        or lower in ("connect.sid", "jsessionid", "phpsessid")
        or lower.startswith("__host-")
        or lower.startswith("__secure-")
    )


def sets_auth_cookie(response):
    for cookie in response.all_cookies():
        if is_auth_cookie(cookie.name):
            return True
    return False


def sends_auth_cookie(request):
    for cookie in request.all_cookies():
        if is_auth_cookie(cookie.name):
            return True
    return False


def has_bearer(request):
    return bearer_token(request.header("authorization")) is not None


def is_json(content_type):
    return bool(content_type) and "application/json" in content_type.lower()


def is_html(content_type):
    return bool(content_type) and "text/html" in content_type.lower()


def is_form(content_type):
    if not content_type:
        return False
    lower = content_type.lower()
    return "application/x-www-form-urlencoded" in lower or "multipart/form-data" in lower


def has_json_token(response):
    if not is_json(response.content_type) or not response.body:
        return False
    for key in TOKEN_RESPONSE_KEYS:
        if '"{}"'.format(key) in response.body:
            return True
    return False


def has_credentials(body):
    if not body:
        return False
    return ("username" in body or "email" in body) and "password" in body


def is_login_url(url):
    lower = url.lower()
    return any(path in lower for path in LOGIN_PATHS)


def is_token_url(url):
    return "/token" in url.lower()


def is_token_refresh(transaction):
    request = transaction.request
    if request.method != "POST":
        return False

    url_lower = request.url.lower()
    if "/token" not in url_lower and "/refresh" not in url_lower:
        return False

    body = request.body
    if not body:
        return False

    return (
        "grant_type=refresh_token" in body
        or '"refresh_token"' in body
        or "refreshToken" in body
    )


def json_error_message(response):
    """First "error" or "message" string from a JSON response body."""
    if not is_json(response.content_type):
        return None
    message = find_string_field(response.body, "error")
    if message is None:
        message = find_string_field(response.body, "message")
    return message


def has_token_in_url(url):
    lower = url.lower()
    return (
        "token=" in lower
        or "bearer%20" in lower
        or "eyJ" in url
    )
