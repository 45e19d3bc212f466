import json

import jwt

from har_sentinel.analyzer import AuthAnalyzer, analyze, result_to_json_dict
from har_sentinel.model import AuthMethodKind, FlowType

from builders import bearer, cookie, timeline, tx

FORM = "application/x-www-form-urlencoded"


def sample_transactions():
    token = jwt.encode(
        {"sub": "alice", "iat": 1700000000},
        "a-sufficiently-long-test-secret-for-hs256",
        algorithm="HS256",
    )

    return timeline(
        tx(
            "https://app.example.com/login",
            response_body="<html></html>",
            response_type="text/html",
        ),
        tx(
            "https://app.example.com/login",
            method="POST",
            body="username=alice&password=pw",
            content_type=FORM,
            status=302,
            response_cookies=[cookie("sessionid", "v1", http_only=True, secure=True)],
        ),
        tx("https://app.example.com/home", cookies=[cookie("sessionid", "v1")]),
        tx("https://api.example.com/me", request_headers=bearer(token)),
        tx("https://app.example.com/logout", method="POST"),
    )


def test_empty_input_gives_empty_analysis():
    analysis = analyze([])

    assert analysis.methods == []
    assert analysis.sessions == []
    assert analysis.flows == []
    assert analysis.events == []
    assert analysis.jwt_tokens == []
    assert analysis.jwt_issues == []
    assert analysis.saml_flows == []
    assert analysis.saml_issues == []
    assert analysis.security_notes == []
    assert analysis.advanced_security.token_exposures == []
    assert analysis.advanced_security.csp_findings == []


def test_analysis_is_idempotent():
    transactions = sample_transactions()

    first = AuthAnalyzer().analyze(transactions)
    second = AuthAnalyzer().analyze(transactions)

    assert first == second


def test_input_is_not_mutated():
    transactions = sample_transactions()
    before = list(transactions)

    analyze(transactions)

    assert transactions == before


def test_end_to_end_sample():
    analysis = analyze(sample_transactions())

    kinds = []
    for method in analysis.methods:
        kinds.append(method.kind)

    assert kinds == [AuthMethodKind.JWT, AuthMethodKind.COOKIE]
    assert [f.flow_type for f in analysis.flows] == [FlowType.FORM_BASED]
    assert [s.entry_index for s in analysis.flows[0].steps] == [0, 1, 2]
    assert len(analysis.jwt_tokens) == 1
    assert len(analysis.events) == 2


def test_result_serializes_to_json():
    analysis = analyze(sample_transactions())

    data = result_to_json_dict(analysis)
    text = json.dumps(data, sort_keys=True)
    decoded = json.loads(text)

    assert decoded["methods"][0]["kind"] == "jwt"
    assert decoded["flows"][0]["flow_type"] == "form_based"
    assert decoded["flows"][0]["steps"][0]["role"] == "login_page"
    assert decoded["jwt_tokens"][0]["claims"]["sub"] == "alice"
