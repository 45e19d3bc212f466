from har_sentinel.methods import MethodDetector, sorted_methods
from har_sentinel.model import AuthMethod, AuthMethodKind

from builders import bearer, tx


def detect(*transactions):
    return MethodDetector().detect(list(transactions))


def test_three_segment_bearer_is_jwt():
    methods = detect(tx("https://api.example.com/me", request_headers=bearer("a.b.c")))

    assert methods == {AuthMethod(AuthMethodKind.JWT)}


def test_opaque_bearer_is_plain_bearer():
    methods = detect(tx("https://api.example.com/me", request_headers=bearer("sometoken")))

    assert methods == {AuthMethod(AuthMethodKind.BEARER)}


def test_bearer_with_empty_segment_is_not_jwt():
    methods = detect(tx("https://api.example.com/me", request_headers=bearer("a..c")))

    assert methods == {AuthMethod(AuthMethodKind.BEARER)}


def test_basic_and_oauth_headers():
    methods = detect(
        tx("https://a.example.com/", request_headers={"Authorization": "Basic dXNlcjpwYXNz"}),
        tx("https://b.example.com/", request_headers={"authorization": "OAuth oauth_token=x"}),
    )

    assert AuthMethod(AuthMethodKind.BASIC) in methods
    assert AuthMethod(AuthMethodKind.OAUTH) in methods


def test_api_key_keeps_header_name_as_seen():
    methods = detect(tx("https://api.example.com/", request_headers={"X-API-Key": "k-123"}))

    assert methods == {AuthMethod(AuthMethodKind.API_KEY, "X-API-Key")}


def test_other_auth_looking_header_is_custom():
    methods = detect(tx("https://api.example.com/", request_headers={"X-Auth-Token": "t"}))

    assert methods == {AuthMethod(AuthMethodKind.CUSTOM, "X-Auth-Token")}


def test_auth_cookie_from_cookie_header():
    methods = detect(
        tx("https://app.example.com/", request_headers={"Cookie": "theme=dark; sid=42"})
    )

    assert methods == {AuthMethod(AuthMethodKind.COOKIE)}


def test_unrelated_cookies_and_headers_contribute_nothing():
    methods = detect(
        tx(
            "https://app.example.com/",
            request_headers={"Accept": "text/html", "Cookie": "theme=dark"},
        )
    )

    assert methods == set()


def test_empty_input():
    assert detect() == set()


def test_sorted_methods_is_deterministic():
    methods = {
        AuthMethod(AuthMethodKind.COOKIE),
        AuthMethod(AuthMethodKind.API_KEY, "x-api-key"),
        AuthMethod(AuthMethodKind.BASIC),
        AuthMethod(AuthMethodKind.API_KEY, "Api-Key"),
    }

    ordered = sorted_methods(methods)

    kinds = []
    for method in ordered:
        kinds.append(method.kind)

    assert kinds == [
        AuthMethodKind.BASIC,
        AuthMethodKind.API_KEY,
        AuthMethodKind.API_KEY,
        AuthMethodKind.COOKIE,
    ]
    assert ordered[1].header_name == "Api-Key"
