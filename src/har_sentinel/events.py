import logging

from .config import DEFAULT_CONFIG
from .model import AuthEvent, AuthEventType, EventDetails
from .patterns import (
    has_json_token,
    is_token_refresh,
    is_token_url,
    json_error_message,
    sets_auth_cookie,
)
from .utils import timestamp_ms, truncate

logger = logging.getLogger(__name__)

LOGIN_ATTEMPT_PATHS = ("/login", "/signin", "/auth/login", "/api/auth", "/authenticate")


class EventDetector:
    def __init__(self, config=None):
        if config is None:
            config = DEFAULT_CONFIG
        self.url_length = int(config.get("url_display_length", 80))

    def detect(self, transactions):
        events = []

        for idx, transaction in enumerate(transactions):
            events.extend(self._events_for(idx, transaction))

        events.sort(key=lambda e: (timestamp_ms(e.timestamp), e.entry_index))

        logger.debug("Detected %d authentication event(s)", len(events))
        return events

    def _events_for(self, idx, transaction):
        events = []

        if is_login_attempt(transaction):
            success = is_successful_login(transaction.response)
            if success:
                details = EventDetails(
                    description="User successfully authenticated",
                    credential_type=credential_type(transaction.request.body),
                )
                event_type = AuthEventType.LOGIN_SUCCESS
            else:
                details = EventDetails(
                    description="Login attempt failed",
                    credential_type=credential_type(transaction.request.body),
                    error_message=json_error_message(transaction.response),
                )
                event_type = AuthEventType.LOGIN_FAILURE
            events.append(self._event(idx, transaction, event_type, details))

        if is_logout(transaction):
            events.append(
                self._event(
                    idx, transaction, AuthEventType.LOGOUT, EventDetails("User logged out")
                )
            )

        if is_token_refresh(transaction):
            if transaction.response.status == 200:
                details = EventDetails(
                    description="Access token refreshed successfully",
                    credential_type="refresh_token",
                )
            else:
                details = EventDetails(
                    description="Token refresh failed",
                    credential_type="refresh_token",
                    error_message=json_error_message(transaction.response),
                )
            events.append(self._event(idx, transaction, AuthEventType.TOKEN_REFRESH, details))

        if is_session_expired(transaction):
            details = EventDetails(
                description="Session expired or invalid",
                error_message=json_error_message(transaction.response),
            )
            events.append(self._event(idx, transaction, AuthEventType.SESSION_EXPIRED, details))

        if is_password_reset(transaction):
            events.append(
                self._event(
                    idx,
                    transaction,
                    AuthEventType.PASSWORD_RESET,
                    EventDetails("Password reset request"),
                )
            )

        return events

    def _event(self, idx, transaction, event_type, details):
        return AuthEvent(
            event_type=event_type,
            timestamp=transaction.started,
            entry_index=idx,
            method=transaction.request.method,
            url=truncate(transaction.request.url, self.url_length),
            status=transaction.response.status,
            details=details,
        )


# -------------------------------------------------------
# Event predicates
# -------------------------------------------------------


def is_login_attempt(transaction):
    request = transaction.request
    if request.method != "POST" or not request.body:
        return False

    body = request.body
    url_lower = request.url.lower()

    if any(path in url_lower for path in LOGIN_ATTEMPT_PATHS):
        has_user = "username" in body or "email" in body or '"user"' in body
        if has_user and "password" in body:
            return True

    return is_token_url(url_lower) and "grant_type=password" in body


def is_successful_login(response):
    if 300 <= response.status < 400:
        return True
    if response.status not in (200, 201):
        return False
    return sets_auth_cookie(response) or has_json_token(response)


def credential_type(body):
    if not body:
        return None
    if "grant_type=password" in body:
        return "oauth_password"
    if "username" in body:
        return "username_password"
    if "email" in body:
        return "email_password"
    return None


def is_logout(transaction):
    request = transaction.request
    if request.method not in ("GET", "POST"):
        return False
    url_lower = request.url.lower()
    return "/logout" in url_lower or "/signout" in url_lower


def is_session_expired(transaction):
    if transaction.response.status != 401:
        return False
    request = transaction.request
    return request.has_header("authorization") or request.has_header("cookie")


def is_password_reset(transaction):
    request = transaction.request
    if request.method != "POST":
        return False

    url_lower = request.url.lower()
    if "/reset" not in url_lower and "/forgot" not in url_lower:
        return False

    body = (request.body or "").lower()
    return any(marker in url_lower or marker in body for marker in ("password", "pwd"))
