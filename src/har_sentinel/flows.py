"""
Reconstruction of multi-step login protocols (OAuth 2.0, HTML forms and
JSON login APIs).

Every flow family starts from an anchor transaction and then walks a fixed
list of stages. Each stage searches a small window after the previous step;
the first stage that finds nothing ends the walk.
"""

import logging
from typing import Callable, NamedTuple, Optional

from .config import DEFAULT_CONFIG
from .model import AuthFlow, FlowRole, FlowStep, FlowType
from .patterns import (
    has_bearer,
    has_credentials,
    has_json_token,
    is_form,
    is_html,
    is_json,
    is_login_url,
    is_token_url,
    sends_auth_cookie,
    sets_auth_cookie,
)
from .utils import duration_ms, scan_forward, timestamp_ms, truncate

logger = logging.getLogger(__name__)

CALLBACK_WINDOW = 10
TOKEN_EXCHANGE_WINDOW = 10
AUTHENTICATED_REQUEST_WINDOW = 10
FORM_SUBMISSION_WINDOW = 5


class Stage(NamedTuple):
    role: FlowRole
    description: str
    # 0 means "the previous step's own transaction"
    window: int
    matches: Callable
    # checked against the previous step before this stage is attempted
    guard: Optional[Callable] = None


class FlowDetector:
    def __init__(self, config=None):
        if config is None:
            config = DEFAULT_CONFIG
        self.url_length = int(config.get("url_display_length", 80))

    def detect(self, transactions):
        flows = []

        flows.extend(self._authorization_code_flows(transactions))
        flows.extend(self._client_credentials_flows(transactions))
        flows.extend(self._implicit_flows(transactions))
        flows.extend(self._form_login_flows(transactions))
        flows.extend(self._json_api_flows(transactions))

        flows.sort(key=lambda f: (timestamp_ms(f.start_time), f.steps[0].entry_index))

        logger.debug("Detected %d authentication flow(s)", len(flows))
        return flows

    # -------------------------------------------------------
    # Flow families
    # -------------------------------------------------------

    def _authorization_code_flows(self, transactions):
        flows = []

        for idx, transaction in enumerate(transactions):
            if not _is_authorize_request(transaction):
                continue

            pkce = _has_pkce_challenge(transaction)

            def is_code_exchange(candidate, pkce=pkce):
                return _is_code_exchange(candidate, pkce)

            stages = [
                Stage(
                    FlowRole.AUTHORIZATION_CALLBACK,
                    "Authorization code received",
                    CALLBACK_WINDOW,
                    _is_authorization_callback,
                ),
                Stage(
                    FlowRole.TOKEN_EXCHANGE,
                    "Token exchange request",
                    TOKEN_EXCHANGE_WINDOW,
                    is_code_exchange,
                ),
                Stage(
                    FlowRole.FIRST_AUTHENTICATED_REQUEST,
                    "First authenticated request",
                    AUTHENTICATED_REQUEST_WINDOW,
                    _has_bearer,
                ),
            ]

            steps = [
                self._step(
                    idx,
                    transaction,
                    FlowRole.AUTHORIZATION_REQUEST,
                    "Authorization request initiated",
                )
            ]
            steps.extend(self._walk(transactions, idx, stages))

            if len(steps) >= 2:
                flows.append(
                    self._flow(FlowType.OAUTH2_AUTHORIZATION_CODE, steps, pkce=pkce)
                )

        return flows

    def _client_credentials_flows(self, transactions):
        flows = []

        stages = [
            Stage(
                FlowRole.FIRST_AUTHENTICATED_REQUEST,
                "First authenticated request",
                AUTHENTICATED_REQUEST_WINDOW,
                _has_bearer,
            ),
        ]

        for idx, transaction in enumerate(transactions):
            if not _is_client_credentials_request(transaction):
                continue

            steps = [
                self._step(
                    idx,
                    transaction,
                    FlowRole.TOKEN_EXCHANGE,
                    "Client credentials token request",
                )
            ]
            steps.extend(self._walk(transactions, idx, stages))

            flows.append(self._flow(FlowType.OAUTH2_CLIENT_CREDENTIALS, steps))

        return flows

    def _implicit_flows(self, transactions):
        flows = []

        # the token comes back in a URL fragment, which a recording never shows
        for idx, transaction in enumerate(transactions):
            if _is_implicit_request(transaction):
                step = self._step(
                    idx,
                    transaction,
                    FlowRole.AUTHORIZATION_REQUEST,
                    "Implicit flow authorization (token in redirect)",
                )
                flows.append(self._flow(FlowType.OAUTH2_IMPLICIT, [step]))

        return flows

    def _form_login_flows(self, transactions):
        flows = []

        stages = [
            Stage(
                FlowRole.CREDENTIALS_SUBMISSION,
                "Credentials submitted",
                FORM_SUBMISSION_WINDOW,
                _is_form_submission,
            ),
            Stage(
                FlowRole.FIRST_AUTHENTICATED_REQUEST,
                "First authenticated request",
                AUTHENTICATED_REQUEST_WINDOW,
                _sends_auth_cookie,
                guard=_establishes_session,
            ),
        ]

        for idx, transaction in enumerate(transactions):
            if not _is_login_page(transaction):
                continue

            steps = [self._step(idx, transaction, FlowRole.LOGIN_PAGE, "Login page loaded")]
            steps.extend(self._walk(transactions, idx, stages))

            if len(steps) >= 2:
                flows.append(self._flow(FlowType.FORM_BASED, steps))

        return flows

    def _json_api_flows(self, transactions):
        flows = []

        stages = [
            Stage(
                FlowRole.TOKEN_RESPONSE,
                "Token received in JSON response",
                0,
                _returns_token,
            ),
            Stage(
                FlowRole.FIRST_AUTHENTICATED_REQUEST,
                "First authenticated request",
                AUTHENTICATED_REQUEST_WINDOW,
                _has_bearer,
            ),
        ]

        for idx, transaction in enumerate(transactions):
            if not _is_json_login(transaction):
                continue

            steps = [
                self._step(
                    idx,
                    transaction,
                    FlowRole.CREDENTIALS_SUBMISSION,
                    "JSON authentication request",
                )
            ]
            steps.extend(self._walk(transactions, idx, stages))

            if len(steps) >= 2:
                flows.append(self._flow(FlowType.JSON_API, steps))

        return flows

    # -------------------------------------------------------
    # Helper methods
    # -------------------------------------------------------

    def _walk(self, transactions, anchor_idx, stages):
        steps = []
        position = anchor_idx

        for stage in stages:
            if stage.guard is not None and not stage.guard(transactions[position]):
                break

            if stage.window == 0:
                match = position if stage.matches(transactions[position]) else None
            else:
                match = scan_forward(transactions, position + 1, stage.window, stage.matches)

            if match is None:
                break

            steps.append(self._step(match, transactions[match], stage.role, stage.description))
            position = match

        return steps

    def _step(self, idx, transaction, role, description):
        return FlowStep(
            entry_index=idx,
            timestamp=transaction.started,
            role=role,
            method=transaction.request.method,
            url=truncate(transaction.request.url, self.url_length),
            status=transaction.response.status,
            description=description,
        )

    def _flow(self, flow_type, steps, pkce=False):
        start_time = steps[0].timestamp
        end_time = steps[-1].timestamp

        return AuthFlow(
            flow_type=flow_type,
            start_time=start_time,
            end_time=end_time,
            duration_ms=duration_ms(start_time, end_time),
            steps=steps,
            pkce=pkce,
        )


# -------------------------------------------------------
# Step predicates
# -------------------------------------------------------


def _is_authorize_request(transaction):
    return "/authorize" in transaction.request.url


def _has_pkce_challenge(transaction):
    url = transaction.request.url
    return "code_challenge=" in url and "code_challenge_method=" in url


def _is_authorization_callback(transaction):
    url = transaction.request.url
    return "?code=" in url or "&code=" in url


def _is_code_exchange(transaction, pkce):
    request = transaction.request
    if request.method != "POST" or not is_token_url(request.url):
        return False

    body = request.body or ""
    if "grant_type=authorization_code" not in body:
        return False

    return not pkce or "code_verifier=" in body


def _is_client_credentials_request(transaction):
    request = transaction.request
    return (
        request.method == "POST"
        and is_token_url(request.url)
        and "grant_type=client_credentials" in (request.body or "")
    )


def _is_implicit_request(transaction):
    url = transaction.request.url
    return "/authorize" in url and "response_type=token" in url


def _is_login_page(transaction):
    request = transaction.request
    response = transaction.response
    if request.method != "GET" or not is_login_url(request.url):
        return False

    if is_html(response.content_type):
        return True
    # undeclared content type: sniff the markup
    return not response.content_type and (response.body or "").lstrip().startswith("<")


def _is_form_submission(transaction):
    request = transaction.request
    if request.method != "POST":
        return False

    url_lower = request.url.lower()
    if not (is_login_url(url_lower) or "/auth" in url_lower):
        return False

    body = request.body
    if not has_credentials(body):
        return False

    if is_form(request.content_type):
        return True
    return not request.content_type and not body.lstrip().startswith("{")


def _establishes_session(transaction):
    return sets_auth_cookie(transaction.response)


def _sends_auth_cookie(transaction):
    return sends_auth_cookie(transaction.request)


def _has_bearer(transaction):
    return has_bearer(transaction.request)


def _is_json_login(transaction):
    request = transaction.request
    if request.method != "POST":
        return False

    url_lower = request.url.lower()
    if not (is_login_url(url_lower) or "/api/auth" in url_lower):
        return False

    body = request.body
    if not body:
        return False
    if not is_json(request.content_type):
        if request.content_type or not body.lstrip().startswith("{"):
            return False

    return ('"username"' in body or '"email"' in body) and '"password"' in body


def _returns_token(transaction):
    return transaction.response.status == 200 and has_json_token(transaction.response)
