import jwt
import yaml

from har_sentinel.analyzer import analyze
from har_sentinel.config import make_config
from har_sentinel.model import (
    AdvancedSecurityAnalysis,
    AuthAnalysis,
    ConfidenceLevel,
    CorsIssue,
    CorsIssueType,
    SecurityNote,
    Severity,
)
from har_sentinel.summary import aggregate_findings, summarize

from builders import bearer, cookie, timeline, tx

FORM = "application/x-www-form-urlencoded"


def snippet(summary):
    return yaml.safe_load(summary.scan_config.config_snippet)["authentication"]


# -------------------------------------------------------
# Primary method
# -------------------------------------------------------


def test_empty_analysis_reports_no_authentication():
    summary = summarize(analyze([]))

    primary = summary.primary_method
    assert primary.method_type == "None Detected"
    assert primary.confidence is ConfidenceLevel.LOW
    assert "no authentication detected" in primary.description.lower()
    assert summary.session_mechanism.mechanism_type == "Unknown"
    assert summary.key_endpoints == []
    assert summary.additional_info == []
    assert summary.scan_config.auth_type == "unknown"
    assert snippet(summary) == {"type": "unknown"}


def test_oauth_flow_wins_over_everything_else():
    transactions = timeline(
        tx("https://app.example.com/", cookies=[cookie("sessionid")]),
        tx("https://idp.example.com/oauth/token", method="POST",
           body="grant_type=client_credentials"),
        tx("https://api.example.com/items?page=2", request_headers=bearer("opaque")),
    )

    summary = summarize(analyze(transactions))

    assert summary.primary_method.method_type == "OAuth 2.0 Client Credentials"
    assert summary.primary_method.confidence is ConfidenceLevel.HIGH
    assert summary.scan_config.auth_type == "oauth2"
    oauth2 = snippet(summary)["oauth2"]
    assert oauth2["tokenUrl"] == "https://idp.example.com/oauth/token"
    assert oauth2["clientId"] == "${OAUTH_CLIENT_ID}"

    paths = [endpoint.path for endpoint in summary.key_endpoints]
    assert paths == ["/oauth/token", "/items?..."]


def test_jwt_tokens_drive_the_summary():
    token = jwt.encode(
        {"sub": "alice", "iat": 1700000000, "exp": 1700003600},
        "a-sufficiently-long-test-secret-for-hs256",
        algorithm="HS256",
    )

    summary = summarize(
        analyze([tx("https://api.example.com/me", request_headers=bearer(token))])
    )

    assert summary.primary_method.method_type == "JWT Bearer Token"
    assert "HS256" in summary.primary_method.description
    assert summary.session_mechanism.mechanism_type == "Stateless (JWT)"
    assert summary.session_mechanism.details == "JWT tokens with 3600-second lifetime"
    assert summary.scan_config.auth_type == "token"
    assert snippet(summary)["tokenValue"] == "Bearer ${AUTH_TOKEN}"


def test_jwt_from_response_body_is_not_described_as_a_header():
    token = jwt.encode(
        {"sub": "alice", "exp": 2000000000},
        "a-sufficiently-long-test-secret-for-hs256",
        algorithm="HS256",
    )

    summary = summarize(
        analyze(
            [
                tx(
                    "https://api.example.com/session",
                    response_body='{"id_token": "' + token + '"}',
                    response_type="application/json",
                )
            ]
        )
    )

    assert summary.primary_method.method_type == "JWT Bearer Token"
    assert "Authorization header" not in summary.primary_method.description


def test_saml_flow_wins_over_jwt_and_sessions():
    token = jwt.encode(
        {"sub": "alice", "exp": 2000000000},
        "a-sufficiently-long-test-secret-for-hs256",
        algorithm="HS256",
    )
    transactions = timeline(
        tx("https://sp.example.com/saml/sso?SAMLRequest=fZJNT8MwDIbv"),
        tx("https://sp.example.com/saml/response", method="POST",
           body="SAMLResponse=PHNhbWxwOlJlc3BvbnNl", content_type=FORM),
        tx("https://sp.example.com/home", cookies=[cookie("sessionid")]),
        tx("https://api.example.com/me", request_headers=bearer(token)),
    )

    analysis = analyze(transactions)
    summary = summarize(analysis)

    assert analysis.jwt_tokens and analysis.sessions
    assert summary.primary_method.method_type == "SAML SSO"
    assert summary.primary_method.confidence is ConfidenceLevel.HIGH
    assert summary.scan_config.auth_type == "cookie"


def test_opaque_bearer_session_summary():
    summary = summarize(
        analyze([tx("https://api.example.com/me", request_headers=bearer("opaque-abc"))])
    )

    assert summary.primary_method.method_type == "Bearer Token"
    assert summary.primary_method.confidence is ConfidenceLevel.HIGH
    assert summary.scan_config.auth_type == "token"


def test_jwt_shaped_bearer_session_summary():
    # token has JWT shape but does not decode, so only the session reports it
    analysis = analyze(
        [tx("https://api.example.com/me", request_headers=bearer("abc.def.ghi"))]
    )
    summary = summarize(analysis)

    assert analysis.jwt_tokens == []
    assert summary.primary_method.method_type == "JWT Bearer Token"
    assert summary.primary_method.description == (
        "Token-based authentication in Authorization header"
    )


def test_cookie_session_summary():
    transactions = timeline(
        tx("https://app.example.com/a", cookies=[cookie("connect.sid")]),
        tx("https://app.example.com/b", cookies=[cookie("connect.sid")]),
    )

    summary = summarize(analyze(transactions))

    assert summary.primary_method.method_type == "Cookie-Based Session"
    assert summary.primary_method.description == "Session cookie: connect.sid"
    assert summary.session_mechanism.details == "Session cookie: connect.sid (2 requests)"
    assert snippet(summary)["cookieName"] == "connect.sid"


def test_api_key_session_summary():
    summary = summarize(
        analyze([tx("https://api.example.com/", request_headers={"X-API-Key": "k"})])
    )

    assert summary.primary_method.method_type == "API Key"
    assert summary.scan_config.auth_type == "header"
    assert snippet(summary)["headers"] == {"X-API-Key": "${API_KEY}"}


def test_form_login_without_sessions_is_medium_confidence():
    transactions = timeline(
        tx("https://app.example.com/login", response_type="text/html"),
        tx(
            "https://app.example.com/login",
            method="POST",
            body="username=a&password=b",
            content_type=FORM,
            status=302,
        ),
    )

    summary = summarize(analyze(transactions))

    assert summary.primary_method.method_type == "Form-Based Login"
    assert summary.primary_method.confidence is ConfidenceLevel.MEDIUM
    assert summary.additional_info == ["1 login event(s) detected"]
    # both steps share a path
    assert len(summary.key_endpoints) == 1


def test_json_api_login_without_sessions_is_medium_confidence():
    transactions = timeline(
        tx(
            "https://app.example.com/api/auth/login",
            method="POST",
            body='{"email": "a@b.c", "password": "pw"}',
            content_type="application/json",
            response_body='{"token": "opaque-abc"}',
            response_type="application/json",
        ),
    )

    analysis = analyze(transactions)
    summary = summarize(analysis)

    assert analysis.sessions == []
    assert summary.primary_method.method_type == "JSON API Authentication"
    assert summary.primary_method.confidence is ConfidenceLevel.MEDIUM
    assert summary.scan_config.auth_type == "token"


def test_basic_auth_summary():
    summary = summarize(
        analyze([tx("https://app.example.com/", request_headers={"Authorization": "Basic dTpw"})])
    )

    assert summary.primary_method.method_type == "HTTP Basic Authentication"
    assert snippet(summary)["headers"] == {"Authorization": "Basic ${BASIC_CREDENTIALS}"}


def test_session_outranks_basic_auth():
    summary = summarize(
        analyze(
            [
                tx(
                    "https://app.example.com/",
                    request_headers={"Authorization": "Basic dTpw"},
                    cookies=[cookie("sessionid")],
                )
            ]
        )
    )

    assert summary.primary_method.method_type == "Cookie-Based Session"


def test_malformed_flow_urls_are_left_out_of_key_endpoints():
    transactions = timeline(
        tx("https://[app/login", response_type="text/html"),
        tx(
            "https://[app/login",
            method="POST",
            body="username=a&password=b",
            content_type=FORM,
            status=302,
        ),
    )

    analysis = analyze(transactions)
    summary = summarize(analysis)

    assert len(analysis.flows) == 1
    assert summary.primary_method.method_type == "Form-Based Login"
    assert summary.key_endpoints == []


def test_unclassified_methods_are_low_confidence():
    summary = summarize(
        analyze([tx("https://app.example.com/", request_headers={"X-Auth-Token": "t"})])
    )

    assert summary.primary_method.method_type == "Unknown Authentication"
    assert summary.primary_method.confidence is ConfidenceLevel.LOW


def test_key_endpoints_are_capped():
    transactions = [
        tx("https://idp.example.com/t{}/token".format(i), method="POST",
           body="grant_type=client_credentials")
        for i in range(6)
    ]

    summary = summarize(analyze(transactions), make_config({"max_key_endpoints": 4}))

    assert len(summary.key_endpoints) == 4


# -------------------------------------------------------
# Findings view
# -------------------------------------------------------


def test_five_cookie_sessions_missing_httponly_group_into_one_warning():
    transactions = timeline(
        *[
            tx(
                "https://app.example.com/page{}".format(i),
                cookies=[cookie("session_{}".format(i), secure=True)],
            )
            for i in range(5)
        ]
    )

    findings = aggregate_findings(analyze(transactions))

    assert len(findings.warnings) == 1
    warning = findings.warnings[0]
    assert warning.count == 5
    assert warning.category == "Cookie Security"
    assert warning.severity is Severity.WARNING
    assert len(warning.sample_entries) <= 3
    assert warning.sample_entries == [0, 1, 2]


def test_groups_sorted_by_count_within_bucket():
    notes = [
        SecurityNote(Severity.WARNING, "A", "seen once", 0),
        SecurityNote(Severity.WARNING, "B", "seen twice", 1),
        SecurityNote(Severity.WARNING, "B", "seen twice", 2),
        SecurityNote(Severity.CRITICAL, "C", "critical", None),
    ]
    cors = [
        CorsIssue(Severity.CRITICAL, CorsIssueType.WILDCARD_WITH_CREDENTIALS, "*", 4, "cors")
    ]
    analysis = AuthAnalysis(
        security_notes=notes,
        advanced_security=AdvancedSecurityAnalysis(cors_issues=cors),
    )

    findings = aggregate_findings(analysis)

    assert [f.message for f in findings.warnings] == ["seen twice", "seen once"]
    assert findings.warnings[0].sample_entries == [1, 2]
    assert [f.category for f in findings.critical] == ["C", "CORS"]
    assert findings.critical[0].sample_entries == []
    assert findings.info == []


def test_same_message_in_different_categories_stays_apart():
    notes = [
        SecurityNote(Severity.INFO, "Cookie Security", "same text", 0),
        SecurityNote(Severity.INFO, "Token Security", "same text", 1),
    ]

    findings = aggregate_findings(AuthAnalysis(security_notes=notes))

    assert len(findings.info) == 2


def test_sample_size_is_configurable():
    notes = [SecurityNote(Severity.INFO, "X", "m", idx) for idx in range(4)]

    findings = aggregate_findings(
        AuthAnalysis(security_notes=notes), make_config({"finding_sample_size": 1})
    )

    assert findings.info[0].count == 4
    assert findings.info[0].sample_entries == [0]
