from har_sentinel.events import EventDetector
from har_sentinel.model import AuthEventType

from builders import bearer, cookie, timeline, tx

FORM = "application/x-www-form-urlencoded"
JSON = "application/json"


def detect(transactions):
    return EventDetector().detect(transactions)


def event_types(events):
    types = []
    for event in events:
        types.append(event.event_type)
    return types


def login(status, **kwargs):
    return tx(
        "https://app.example.com/login",
        method="POST",
        body="username=alice&password=hunter2",
        content_type=FORM,
        status=status,
        **kwargs
    )


def test_redirect_after_login_is_success():
    events = detect([login(302)])

    assert event_types(events) == [AuthEventType.LOGIN_SUCCESS]
    assert events[0].details.credential_type == "username_password"
    assert events[0].details.error_message is None


def test_session_cookie_after_login_is_success():
    events = detect([login(200, response_cookies=[cookie("auth_token")])])

    assert event_types(events) == [AuthEventType.LOGIN_SUCCESS]


def test_token_in_json_response_is_success():
    events = detect([login(201, response_body='{"accessToken": "x"}', response_type=JSON)])

    assert event_types(events) == [AuthEventType.LOGIN_SUCCESS]


def test_plain_200_is_failure():
    events = detect([login(200, response_body="<p>Wrong password</p>", response_type="text/html")])

    assert event_types(events) == [AuthEventType.LOGIN_FAILURE]


def test_failure_carries_json_error_message():
    events = detect(
        [login(401, response_body='{"error": "invalid_credentials"}', response_type=JSON)]
    )

    assert event_types(events) == [AuthEventType.LOGIN_FAILURE]
    assert events[0].details.error_message == "invalid_credentials"
    assert events[0].status == 401


def test_failure_falls_back_to_message_field():
    events = detect(
        [login(403, response_body='{"message": "Account locked"}', response_type=JSON)]
    )

    assert events[0].details.error_message == "Account locked"


def test_password_grant_is_a_login():
    events = detect(
        [
            tx(
                "https://idp.example.com/oauth/token",
                method="POST",
                body="grant_type=password&username=alice&password=pw",
                content_type=FORM,
                response_body='{"access_token": "abc"}',
                response_type=JSON,
            )
        ]
    )

    assert event_types(events) == [AuthEventType.LOGIN_SUCCESS]
    assert events[0].details.credential_type == "oauth_password"


def test_logout():
    events = detect([tx("https://app.example.com/auth/signout")])

    assert event_types(events) == [AuthEventType.LOGOUT]


def test_delete_logout_is_ignored():
    assert detect([tx("https://app.example.com/logout", method="DELETE")]) == []


def test_token_refresh_success_and_failure():
    transactions = timeline(
        tx(
            "https://idp.example.com/oauth/token",
            method="POST",
            body="grant_type=refresh_token&refresh_token=r1",
        ),
        tx(
            "https://app.example.com/api/refresh",
            method="POST",
            body='{"refreshToken": "r2"}',
            content_type=JSON,
            status=400,
            response_body='{"error": "invalid_grant"}',
            response_type=JSON,
        ),
    )

    events = detect(transactions)

    assert event_types(events) == [AuthEventType.TOKEN_REFRESH, AuthEventType.TOKEN_REFRESH]
    assert events[0].details.credential_type == "refresh_token"
    assert events[0].details.error_message is None
    assert events[1].details.error_message == "invalid_grant"


def test_session_expired_needs_credentials_on_request():
    transactions = timeline(
        tx("https://api.example.com/me", request_headers=bearer("stale"), status=401),
        tx("https://api.example.com/me", status=401),
    )

    events = detect(transactions)

    assert event_types(events) == [AuthEventType.SESSION_EXPIRED]
    assert events[0].entry_index == 0


def test_password_reset():
    transactions = timeline(
        tx("https://app.example.com/forgot-password", method="POST", body="email=a@b.c"),
        tx("https://app.example.com/account/reset", method="POST", body='{"new_pwd": "x"}'),
        tx("https://app.example.com/reset-password", method="GET"),
    )

    events = detect(transactions)

    assert event_types(events) == [AuthEventType.PASSWORD_RESET, AuthEventType.PASSWORD_RESET]
    assert [e.entry_index for e in events] == [0, 1]


def test_events_sorted_by_timestamp():
    transactions = timeline(
        tx("https://app.example.com/logout"),
        login(302),
    )

    events = detect(transactions)

    assert [e.entry_index for e in events] == [0, 1]
    assert events[1].event_type.label == "Login Success"


def test_empty_input():
    assert detect([]) == []
