import logging

from .model import AuthSession, SessionAttributes, SessionKind
from .patterns import SESSION_API_KEY_HEADERS, is_session_cookie
from .utils import bearer_token, duration_ms, is_jwt_strict, timestamp_ms

logger = logging.getLogger(__name__)


class SessionTracker:
    def track(self, transactions):
        cookie_groups = {}
        bearer_groups = {}
        apikey_groups = {}

        # group entries by the credential they carry
        for idx, transaction in enumerate(transactions):
            request = transaction.request

            for cookie in request.all_cookies():
                if is_session_cookie(cookie.name):
                    cookie_groups.setdefault(cookie.name, []).append((idx, transaction, cookie))

            for header in request.headers:
                name = header.name.lower()

                if name == "authorization":
                    token = bearer_token(header.value)
                    if token is not None:
                        key = token[:16]
                        bearer_groups.setdefault(key, []).append((idx, transaction, token))
                elif name in SESSION_API_KEY_HEADERS:
                    key = "{}:{}".format(header.name, header.value[:12])
                    apikey_groups.setdefault(key, []).append((idx, transaction, header.name))

        sessions = []

        for cookie_name, members in cookie_groups.items():
            sessions.append(self._build_cookie_session(cookie_name, members))

        for token_key, members in bearer_groups.items():
            sessions.append(self._build_bearer_session(token_key, members))

        for members in apikey_groups.values():
            sessions.append(self._build_apikey_session(members))

        sessions.sort(key=lambda s: (timestamp_ms(s.first_seen), s.entry_indices[0]))

        logger.debug("Tracked %d session(s)", len(sessions))
        return sessions

    # -------------------------------------------------------
    # Session builders
    # -------------------------------------------------------

    def _build_cookie_session(self, cookie_name, members):
        _, first, cookie = members[0]
        last = members[-1][1]

        # attributes of the first cookie are assumed stable for the session
        attributes = SessionAttributes(
            http_only=cookie.http_only,
            secure=cookie.secure,
            same_site=None,
            expires=cookie.expires,
            path=cookie.path,
            domain=cookie.domain,
        )

        return AuthSession(
            session_type=SessionKind.COOKIE,
            identifier="{}={}".format(cookie_name, _preview(cookie.value)),
            first_seen=first.started,
            last_seen=last.started,
            request_count=len(members),
            duration_ms=duration_ms(first.started, last.started),
            entry_indices=[idx for idx, _, _ in members],
            cookie_name=cookie_name,
            attributes=attributes,
        )

    def _build_bearer_session(self, token_key, members):
        first = members[0][1]
        last = members[-1][1]
        first_token = members[0][2]

        return AuthSession(
            session_type=SessionKind.BEARER_TOKEN,
            identifier="Bearer {}".format(_preview(token_key)),
            first_seen=first.started,
            last_seen=last.started,
            request_count=len(members),
            duration_ms=duration_ms(first.started, last.started),
            entry_indices=[idx for idx, _, _ in members],
            is_jwt=is_jwt_strict(first_token),
        )

    def _build_apikey_session(self, members):
        first = members[0][1]
        last = members[-1][1]
        header_name = members[0][2]

        return AuthSession(
            session_type=SessionKind.API_KEY,
            identifier="{}: ***".format(header_name),
            first_seen=first.started,
            last_seen=last.started,
            request_count=len(members),
            duration_ms=duration_ms(first.started, last.started),
            entry_indices=[idx for idx, _, _ in members],
            header_name=header_name,
        )


def _preview(value):
    if len(value) > 12:
        return value[:12] + "..."
    return value
