import logging

from .config import DEFAULT_CONFIG
from .model import AuthMethodKind, SecurityNote, SessionKind, Severity
from .patterns import SESSION_API_KEY_HEADERS, sends_auth_cookie

logger = logging.getLogger(__name__)

API_KEY_QUERY_KEYS = ("api_key=", "apikey=", "key=")


class SecurityNoteAnalyzer:
    def __init__(self, config=None):
        if config is None:
            config = DEFAULT_CONFIG
        self.report_missing_samesite = bool(config.get("report_missing_samesite", True))

    def analyze(self, transactions, methods, sessions):
        notes = []

        notes.extend(self._method_notes(methods))
        notes.extend(self._session_notes(transactions, sessions))

        transport_note = self._transport_note(transactions)
        if transport_note is not None:
            notes.append(transport_note)

        logger.debug("Produced %d security note(s)", len(notes))
        return notes

    def _method_notes(self, methods):
        notes = []

        for method in methods:
            if method.kind is AuthMethodKind.BASIC:
                notes.append(
                    SecurityNote(
                        severity=Severity.WARNING,
                        category="Authentication Method",
                        message="Basic Authentication detected - credentials encoded in header (use HTTPS)",
                    )
                )
            elif method.kind is AuthMethodKind.API_KEY:
                notes.append(
                    SecurityNote(
                        severity=Severity.INFO,
                        category="Authentication Method",
                        message="API Key authentication detected",
                        subject=method.header_name,
                    )
                )

        return notes

    def _session_notes(self, transactions, sessions):
        notes = []

        for session in sessions:
            first_idx = session.entry_indices[0]
            first_url = transactions[first_idx].request.url

            if session.session_type is SessionKind.COOKIE:
                notes.extend(self._cookie_notes(session, first_idx, first_url))

            elif session.session_type is SessionKind.BEARER_TOKEN:
                if session.is_jwt:
                    notes.append(
                        SecurityNote(
                            severity=Severity.INFO,
                            category="Token Security",
                            message="JWT tokens detected - ensure tokens are validated and not expired",
                            entry_index=first_idx,
                        )
                    )

            elif session.session_type is SessionKind.API_KEY:
                if _api_key_in_query(first_url):
                    notes.append(
                        SecurityNote(
                            severity=Severity.WARNING,
                            category="API Key Security",
                            message="API key detected in query parameter (prefer header-based authentication)",
                            entry_index=first_idx,
                            subject=session.header_name,
                        )
                    )

        return notes

    def _cookie_notes(self, session, first_idx, first_url):
        notes = []
        attributes = session.attributes
        if attributes is None:
            return notes

        if attributes.http_only is not True:
            notes.append(
                SecurityNote(
                    severity=Severity.WARNING,
                    category="Cookie Security",
                    message="Session cookie missing HttpOnly flag (vulnerable to XSS)",
                    entry_index=first_idx,
                    subject=session.cookie_name,
                )
            )

        if first_url.lower().startswith("https://") and attributes.secure is not True:
            notes.append(
                SecurityNote(
                    severity=Severity.WARNING,
                    category="Cookie Security",
                    message="Session cookie on HTTPS connection missing Secure flag",
                    entry_index=first_idx,
                    subject=session.cookie_name,
                )
            )

        # HAR cookies never carry SameSite, so this fires for every cookie session
        if self.report_missing_samesite and attributes.same_site is None:
            notes.append(
                SecurityNote(
                    severity=Severity.INFO,
                    category="Cookie Security",
                    message="Session cookie missing SameSite attribute (consider setting to Lax or Strict)",
                    entry_index=first_idx,
                    subject=session.cookie_name,
                )
            )

        return notes

    def _transport_note(self, transactions):
        for idx, transaction in enumerate(transactions):
            request = transaction.request
            if not request.url.lower().startswith("http://"):
                continue

            if _carries_auth_material(request):
                return SecurityNote(
                    severity=Severity.CRITICAL,
                    category="Transport Security",
                    message="Authentication credentials sent over unencrypted HTTP connection (use HTTPS)",
                    entry_index=idx,
                )

        return None


def _carries_auth_material(request):
    for header in request.headers:
        name = header.name.lower()
        if name == "authorization" or name in SESSION_API_KEY_HEADERS:
            return True
    return sends_auth_cookie(request)


def _api_key_in_query(url):
    query = url.partition("?")[2].partition("#")[0].lower()
    return any(key in query for key in API_KEY_QUERY_KEYS)
