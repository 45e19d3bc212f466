import logging

from .config import DEFAULT_CONFIG
from .model import (
    SamlFlow,
    SamlFlowType,
    SamlSecurityIssue,
    SamlStep,
    SamlStepRole,
    Severity,
)
from .utils import duration_ms, scan_forward, timestamp_ms, truncate

logger = logging.getLogger(__name__)

IDP_WINDOW = 10
RESPONSE_WINDOW = 15
ACS_WINDOW = 5
LOGOUT_RESPONSE_WINDOW = 5


class SamlDetector:
    def __init__(self, config=None):
        if config is None:
            config = DEFAULT_CONFIG
        self.url_length = int(config.get("url_display_length", 80))

    def detect(self, transactions):
        flows = []
        consumed = set()

        for idx, transaction in enumerate(transactions):
            if is_authn_request(transaction):
                flow = self._sp_initiated_flow(transactions, idx)
                if flow is not None:
                    flows.append(flow)
                    consumed.update(step.entry_index for step in flow.steps)

        for idx, transaction in enumerate(transactions):
            if is_saml_response(transaction) and idx not in consumed:
                flows.append(self._idp_initiated_flow(transactions, idx))

        for idx, transaction in enumerate(transactions):
            if is_logout_request(transaction):
                flow = self._logout_flow(transactions, idx)
                if flow is not None:
                    flows.append(flow)

        flows.sort(key=lambda f: (timestamp_ms(f.start_time), f.steps[0].entry_index))

        issues = self._transport_issues(transactions)

        logger.debug("Detected %d SAML flow(s), %d issue(s)", len(flows), len(issues))
        return flows, issues

    # -------------------------------------------------------
    # Flow builders
    # -------------------------------------------------------

    def _sp_initiated_flow(self, transactions, start):
        steps = [
            self._step(
                transactions,
                start,
                SamlStepRole.AUTHN_REQUEST,
                "SAML AuthnRequest sent to IdP",
            )
        ]

        response_idx = scan_forward(transactions, start + 1, RESPONSE_WINDOW, is_saml_response)

        # IdP interaction has to happen before the response comes back
        idp_window = IDP_WINDOW
        if response_idx is not None:
            idp_window = min(IDP_WINDOW, response_idx - start - 1)

        idp_idx = scan_forward(transactions, start + 1, idp_window, _is_idp_interaction)
        if idp_idx is not None:
            steps.append(
                self._step(
                    transactions,
                    idp_idx,
                    SamlStepRole.IDP_REDIRECT,
                    "User authentication at IdP",
                )
            )

        if response_idx is not None:
            steps.append(
                self._step(
                    transactions,
                    response_idx,
                    SamlStepRole.SAML_RESPONSE,
                    "SAML Response received from IdP",
                )
            )
            steps.extend(self._acs_steps(transactions, response_idx))

        if len(steps) < 2:
            return None

        return self._flow(SamlFlowType.SP_INITIATED, steps)

    def _idp_initiated_flow(self, transactions, start):
        steps = [
            self._step(
                transactions,
                start,
                SamlStepRole.SAML_RESPONSE,
                "Unsolicited SAML Response received from IdP",
            )
        ]
        steps.extend(self._acs_steps(transactions, start))

        return self._flow(SamlFlowType.IDP_INITIATED, steps)

    def _logout_flow(self, transactions, start):
        response_idx = scan_forward(
            transactions, start + 1, LOGOUT_RESPONSE_WINDOW, _is_logout_response
        )
        if response_idx is None:
            return None

        steps = [
            self._step(transactions, start, SamlStepRole.LOGOUT_REQUEST, "SAML Logout Request"),
            self._step(
                transactions, response_idx, SamlStepRole.LOGOUT_RESPONSE, "SAML Logout Response"
            ),
        ]
        return self._flow(SamlFlowType.LOGOUT, steps)

    def _acs_steps(self, transactions, response_idx):
        acs_idx = scan_forward(transactions, response_idx + 1, ACS_WINDOW, _is_acs_request)
        if acs_idx is None:
            return []
        return [
            self._step(
                transactions,
                acs_idx,
                SamlStepRole.ASSERTION_CONSUMER_SERVICE,
                "Assertion Consumer Service processed response",
            )
        ]

    def _transport_issues(self, transactions):
        issues = []

        for idx, transaction in enumerate(transactions):
            if not transaction.request.url.lower().startswith("http://"):
                continue

            if is_authn_request(transaction):
                message = "SAML AuthnRequest sent over unencrypted HTTP"
            elif is_saml_response(transaction):
                message = "SAML Response sent over unencrypted HTTP"
            else:
                continue

            issues.append(
                SamlSecurityIssue(severity=Severity.CRITICAL, message=message, entry_index=idx)
            )

        return issues

    def _step(self, transactions, idx, role, description):
        transaction = transactions[idx]
        return SamlStep(
            entry_index=idx,
            timestamp=transaction.started,
            role=role,
            method=transaction.request.method,
            url=truncate(transaction.request.url, self.url_length),
            status=transaction.response.status,
            description=description,
        )

    def _flow(self, flow_type, steps):
        start_time = steps[0].timestamp
        end_time = steps[-1].timestamp
        return SamlFlow(
            flow_type=flow_type,
            start_time=start_time,
            end_time=end_time,
            duration_ms=duration_ms(start_time, end_time),
            steps=steps,
        )


# -------------------------------------------------------
# SAML markers
# -------------------------------------------------------


def is_authn_request(transaction):
    request = transaction.request
    url_lower = request.url.lower()

    if "/saml/sso" in url_lower or "/saml2/sso" in url_lower or "samlrequest=" in url_lower:
        return True

    return request.method == "POST" and "SAMLRequest" in (request.body or "")


def is_saml_response(transaction):
    request = transaction.request

    if "samlresponse=" in request.url.lower():
        return True

    return request.method == "POST" and "SAMLResponse" in (request.body or "")


def is_logout_request(transaction):
    url_lower = transaction.request.url.lower()
    return (
        "/saml/logout" in url_lower
        or "/saml2/logout" in url_lower
        or "samllogoutrequest=" in url_lower
    )


def _is_idp_interaction(transaction):
    url_lower = transaction.request.url.lower()
    return "/idp/" in url_lower or "/sso/" in url_lower or "/auth/" in url_lower


def _is_acs_request(transaction):
    url_lower = transaction.request.url.lower()
    return "/acs" in url_lower or "/consume" in url_lower


def _is_logout_response(transaction):
    return "samllogoutresponse=" in transaction.request.url.lower()
