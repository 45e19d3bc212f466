"""
Derived views over a finished AuthAnalysis: the one-screen authentication
summary (primary method, session mechanism, key endpoints, scanner setup)
and the deduplicated findings view. Neither view looks at transactions again.
"""

import logging
from urllib.parse import urlsplit

import yaml

from .config import DEFAULT_CONFIG
from .model import (
    AggregatedFinding,
    AuthenticationSummary,
    AuthEventType,
    AuthMethodKind,
    AuthMethodSummary,
    ConfidenceLevel,
    EndpointInfo,
    FindingKey,
    FlowRole,
    FlowType,
    ScanConfig,
    SecurityFindingsSummary,
    SessionKind,
    SessionMechanismSummary,
    Severity,
)

logger = logging.getLogger(__name__)


def summarize(analysis, config=None):
    if config is None:
        config = DEFAULT_CONFIG

    primary, mechanism = _primary_method(analysis)

    summary = AuthenticationSummary(
        primary_method=primary,
        session_mechanism=_session_mechanism(analysis),
        key_endpoints=_key_endpoints(analysis, int(config.get("max_key_endpoints", 10))),
        scan_config=_scan_config(mechanism, analysis),
        additional_info=_additional_info(analysis),
    )

    logger.debug(
        "Primary method: %s (%s)", primary.method_type, primary.confidence.value
    )
    return summary


# -------------------------------------------------------
# Primary method
# -------------------------------------------------------


def _primary_method(analysis):
    """
    First matching signal wins. Returns the summary and the scan config
    mechanism (cookie, token, oauth2, header or unknown).
    """
    high = ConfidenceLevel.HIGH

    oauth_flow = next((f for f in analysis.flows if f.flow_type.is_oauth2), None)
    if oauth_flow is not None:
        return (
            AuthMethodSummary(
                oauth_flow.label,
                "OAuth 2.0 flow detected with token-based authentication",
                high,
            ),
            "oauth2",
        )

    if analysis.saml_flows:
        return (
            AuthMethodSummary(
                "SAML SSO",
                "{} SAML flow(s) detected".format(len(analysis.saml_flows)),
                high,
            ),
            "cookie",
        )

    if analysis.jwt_tokens:
        alg = analysis.jwt_tokens[0].header.alg or "unknown"
        return (
            AuthMethodSummary(
                "JWT Bearer Token",
                "JWT tokens observed in traffic (algorithm: {})".format(alg),
                high,
            ),
            "token",
        )

    if analysis.sessions:
        session = analysis.sessions[0]
        if session.session_type is SessionKind.COOKIE:
            return (
                AuthMethodSummary(
                    "Cookie-Based Session",
                    "Session cookie: {}".format(session.cookie_name),
                    high,
                ),
                "cookie",
            )
        if session.session_type is SessionKind.BEARER_TOKEN:
            method_type = "JWT Bearer Token" if session.is_jwt else "Bearer Token"
            return (
                AuthMethodSummary(
                    method_type,
                    "Token-based authentication in Authorization header",
                    high,
                ),
                "token",
            )
        return (
            AuthMethodSummary(
                "API Key",
                "API key in {} header".format(session.header_name),
                high,
            ),
            "header",
        )

    flow_types = {f.flow_type for f in analysis.flows}

    if FlowType.FORM_BASED in flow_types:
        return (
            AuthMethodSummary(
                "Form-Based Login",
                "Traditional form-based authentication flow detected",
                ConfidenceLevel.MEDIUM,
            ),
            "cookie",
        )

    if FlowType.JSON_API in flow_types:
        return (
            AuthMethodSummary(
                "JSON API Authentication",
                "JSON-based authentication endpoint detected",
                ConfidenceLevel.MEDIUM,
            ),
            "token",
        )

    if any(m.kind is AuthMethodKind.BASIC for m in analysis.methods):
        return (
            AuthMethodSummary(
                "HTTP Basic Authentication",
                "Username and password in Authorization header",
                high,
            ),
            "header",
        )

    if analysis.methods:
        return (
            AuthMethodSummary(
                "Unknown Authentication",
                "{} authentication method(s) detected but type unclear".format(
                    len(analysis.methods)
                ),
                ConfidenceLevel.LOW,
            ),
            "unknown",
        )

    return (
        AuthMethodSummary(
            "None Detected", "No authentication detected", ConfidenceLevel.LOW
        ),
        "unknown",
    )


# -------------------------------------------------------
# Session mechanism, endpoints, extra lines
# -------------------------------------------------------


def _session_mechanism(analysis):
    if analysis.jwt_tokens:
        claims = analysis.jwt_tokens[0].claims
        if claims.exp is not None and claims.iat is not None:
            details = "JWT tokens with {}-second lifetime".format(claims.exp - claims.iat)
        else:
            details = "JWT tokens without issued-at/expiry lifetime"
        return SessionMechanismSummary("Stateless (JWT)", details)

    cookie_session = _first_session(analysis, SessionKind.COOKIE)
    if cookie_session is not None:
        return SessionMechanismSummary(
            "Stateful (Server-Side Sessions)",
            "Session cookie: {} ({} requests)".format(
                cookie_session.cookie_name, cookie_session.request_count
            ),
        )

    if _first_session(analysis, SessionKind.BEARER_TOKEN) is not None:
        return SessionMechanismSummary(
            "Token-Based", "Bearer tokens in Authorization header"
        )

    if _first_session(analysis, SessionKind.API_KEY) is not None:
        return SessionMechanismSummary("API Key", "Static API key authentication")

    return SessionMechanismSummary("Unknown", "Could not determine session mechanism")


def _first_session(analysis, kind):
    return next((s for s in analysis.sessions if s.session_type is kind), None)


def _key_endpoints(analysis, limit):
    endpoints = []
    seen = set()

    steps = [step for flow in analysis.flows for step in flow.steps]
    steps.extend(step for flow in analysis.saml_flows for step in flow.steps)

    for step in steps:
        path = _display_path(step.url)
        if not path or path in seen:
            continue
        seen.add(path)
        endpoints.append(EndpointInfo(step.method, path, step.description))

    return endpoints[:limit]


def _display_path(url):
    try:
        parts = urlsplit(url)
    except ValueError:
        # e.g. an unbalanced "[" in the host
        return ""
    if not parts.scheme or not parts.netloc:
        return ""
    path = parts.path or "/"
    if parts.query:
        return path + "?..."
    return path


def _additional_info(analysis):
    lines = []

    logins = sum(1 for e in analysis.events if e.event_type is AuthEventType.LOGIN_SUCCESS)
    logouts = sum(1 for e in analysis.events if e.event_type is AuthEventType.LOGOUT)

    if logins:
        lines.append("{} login event(s) detected".format(logins))
    if logouts:
        lines.append("{} logout event(s) detected".format(logouts))

    patterns = analysis.advanced_security.refresh_patterns
    if patterns:
        refreshes = sum(p.refresh_count for p in patterns)
        lines.append("Token refresh pattern detected ({} refresh operations)".format(refreshes))

    return lines


# -------------------------------------------------------
# Scanner configuration
# -------------------------------------------------------


def _scan_config(mechanism, analysis):
    notes = []

    if mechanism == "cookie":
        session = _first_session(analysis, SessionKind.COOKIE)
        cookie_name = session.cookie_name if session is not None else "session"
        auth = {"type": "cookie", "cookieName": cookie_name, "cookieValue": "${AUTH_COOKIE}"}
        notes.append("Set AUTH_COOKIE environment variable with {}".format(cookie_name))
        notes.append("Ensure cookie includes HttpOnly and Secure flags")

    elif mechanism == "token":
        auth = {
            "type": "token",
            "header": "Authorization",
            "tokenValue": "Bearer ${AUTH_TOKEN}",
        }
        notes.append("Extract token from login response")
        notes.append("Set AUTH_TOKEN environment variable")
        if analysis.jwt_tokens:
            notes.append("Token should be refreshed periodically")

    elif mechanism == "oauth2":
        auth = {
            "type": "oauth2",
            "oauth2": {
                "tokenUrl": _token_url(analysis),
                "clientId": "${OAUTH_CLIENT_ID}",
                "clientSecret": "${OAUTH_CLIENT_SECRET}",
            },
        }
        notes.append("Configure OAuth 2.0 client credentials")
        notes.append("The scanner will obtain tokens automatically")

    elif mechanism == "header":
        session = _first_session(analysis, SessionKind.API_KEY)
        if session is not None:
            headers = {session.header_name: "${API_KEY}"}
            notes.append("Set API_KEY environment variable")
        else:
            headers = {"Authorization": "Basic ${BASIC_CREDENTIALS}"}
            notes.append("Set BASIC_CREDENTIALS to base64(username:password)")
        auth = {"type": "header", "headers": headers}

    else:
        auth = {"type": "unknown"}
        notes.append("Manual configuration required")

    snippet = yaml.safe_dump(
        {"authentication": auth}, default_flow_style=False, sort_keys=False
    )
    return ScanConfig(auth_type=mechanism, config_snippet=snippet, notes=notes)


def _token_url(analysis):
    for flow in analysis.flows:
        for step in flow.steps:
            if step.role is FlowRole.TOKEN_EXCHANGE:
                return step.url
    return None


# -------------------------------------------------------
# Deduplicated findings
# -------------------------------------------------------


def aggregate_findings(analysis, config=None):
    if config is None:
        config = DEFAULT_CONFIG
    sample_size = int(config.get("finding_sample_size", 3))

    buckets = {Severity.CRITICAL: {}, Severity.WARNING: {}, Severity.INFO: {}}

    def add(severity, category, message, entry_index):
        groups = buckets[severity]
        key = FindingKey(category, message)
        count, samples = groups.get(key, (0, []))
        if entry_index is not None and len(samples) < sample_size:
            samples.append(entry_index)
        groups[key] = (count + 1, samples)

    for note in analysis.security_notes:
        add(note.severity, note.category, note.message, note.entry_index)

    advanced = analysis.advanced_security
    for exposure in advanced.token_exposures:
        add(exposure.severity, "Token Exposure", exposure.message, exposure.entry_index)
    for issue in advanced.cors_issues:
        add(issue.severity, "CORS", issue.message, issue.entry_index)
    for finding in advanced.csp_findings:
        add(finding.severity, "CSP", finding.message, finding.entry_index)

    return SecurityFindingsSummary(
        critical=_ranked(Severity.CRITICAL, buckets[Severity.CRITICAL]),
        warnings=_ranked(Severity.WARNING, buckets[Severity.WARNING]),
        info=_ranked(Severity.INFO, buckets[Severity.INFO]),
    )


def _ranked(severity, groups):
    findings = [
        AggregatedFinding(
            severity=severity,
            category=key.category,
            message=key.message,
            count=count,
            sample_entries=samples,
        )
        for key, (count, samples) in groups.items()
    ]
    # stable sort keeps first-seen order among equal counts
    findings.sort(key=lambda f: f.count, reverse=True)
    return findings
