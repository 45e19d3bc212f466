import logging

from .model import AuthMethod, AuthMethodKind
from .patterns import API_KEY_HEADERS, is_auth_cookie
from .utils import is_jwt_strict

logger = logging.getLogger(__name__)


class MethodDetector:
    def detect(self, transactions):
        methods = set()

        for transaction in transactions:
            request = transaction.request

            for header in request.headers:
                name = header.name.lower()

                if name == "authorization":
                    method = self._classify_authorization(header.value)
                    if method is not None:
                        methods.add(method)
                elif name in API_KEY_HEADERS:
                    methods.add(AuthMethod(AuthMethodKind.API_KEY, header.name))
                elif name == "cookie":
                    continue
                elif "auth" in name or "token" in name:
                    methods.add(AuthMethod(AuthMethodKind.CUSTOM, header.name))

            for cookie in request.all_cookies():
                if is_auth_cookie(cookie.name):
                    methods.add(AuthMethod(AuthMethodKind.COOKIE))
                    break

        logger.debug("Detected %d authentication method(s)", len(methods))
        return methods

    def _classify_authorization(self, value):
        if value.startswith("Basic "):
            return AuthMethod(AuthMethodKind.BASIC)

        if value.startswith("Bearer "):
            token = value[len("Bearer "):].strip()
            if is_jwt_strict(token):
                return AuthMethod(AuthMethodKind.JWT)
            return AuthMethod(AuthMethodKind.BEARER)

        if value.startswith("OAuth "):
            return AuthMethod(AuthMethodKind.OAUTH)

        return None


def sorted_methods(methods):
    order = list(AuthMethodKind)
    return sorted(
        methods,
        key=lambda m: (order.index(m.kind), (m.header_name or "").lower(), m.header_name or ""),
    )
