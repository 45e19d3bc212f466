"""
Transport-level checks that do not depend on the detected auth method:
tokens leaking through URLs, CORS response headers, Content-Security-Policy
on HTML pages and the cadence of token refreshes.
"""

import logging

from .model import (
    AdvancedSecurityAnalysis,
    CorsIssue,
    CorsIssueType,
    CspFinding,
    CspFindingType,
    ExposureType,
    RefreshPatternType,
    Severity,
    TokenExposure,
    TokenRefreshPattern,
)
from .patterns import has_token_in_url, is_html, is_token_refresh
from .utils import timestamp_ms, truncate

logger = logging.getLogger(__name__)

LOCATION_LENGTH = 100

CSP_HEADERS = ("content-security-policy", "content-security-policy-report-only")

SENSITIVE_QUERY_KEYS = ("api_key=", "apikey=", "secret=", "key=")


class AdvancedSecurityAnalyzer:
    def analyze(self, transactions):
        analysis = AdvancedSecurityAnalysis(
            token_exposures=self.token_exposures(transactions),
            cors_issues=self.cors_issues(transactions),
            csp_findings=self.csp_findings(transactions),
            refresh_patterns=self.refresh_patterns(transactions),
        )

        logger.debug(
            "Advanced checks: %d exposure(s), %d CORS issue(s), %d CSP finding(s), "
            "%d refresh pattern(s)",
            len(analysis.token_exposures),
            len(analysis.cors_issues),
            len(analysis.csp_findings),
            len(analysis.refresh_patterns),
        )
        return analysis

    # -------------------------------------------------------
    # Token exposure
    # -------------------------------------------------------

    def token_exposures(self, transactions):
        exposures = []

        for idx, transaction in enumerate(transactions):
            url = transaction.request.url
            location = truncate(url, LOCATION_LENGTH)

            if has_token_in_url(url):
                exposures.append(
                    TokenExposure(
                        severity=Severity.CRITICAL,
                        exposure_type=ExposureType.TOKEN_IN_URL,
                        location=location,
                        entry_index=idx,
                        message="Authentication token found in URL (will be logged)",
                    )
                )

            if _has_credentials_in_query(url):
                exposures.append(
                    TokenExposure(
                        severity=Severity.CRITICAL,
                        exposure_type=ExposureType.CREDENTIALS_IN_URL,
                        location=location,
                        entry_index=idx,
                        message="Credentials (username/password) found in URL",
                    )
                )

            if _has_sensitive_query(url):
                exposures.append(
                    TokenExposure(
                        severity=Severity.WARNING,
                        exposure_type=ExposureType.SENSITIVE_DATA_IN_URL,
                        location=location,
                        entry_index=idx,
                        message="Potentially sensitive data in URL",
                    )
                )

            referer = transaction.request.header("referer")
            if referer and has_token_in_url(referer):
                exposures.append(
                    TokenExposure(
                        severity=Severity.WARNING,
                        exposure_type=ExposureType.TOKEN_IN_REFERER,
                        location=truncate(referer, LOCATION_LENGTH),
                        entry_index=idx,
                        message="Token leaked in Referer header",
                    )
                )

        return exposures

    # -------------------------------------------------------
    # CORS
    # -------------------------------------------------------

    def cors_issues(self, transactions):
        issues = []

        for idx, transaction in enumerate(transactions):
            response = transaction.response
            allow_origin = response.header("access-control-allow-origin")
            credentials = (response.header("access-control-allow-credentials") or "").strip()

            if allow_origin is not None:
                if allow_origin == "*" and credentials.lower() == "true":
                    issues.append(
                        CorsIssue(
                            severity=Severity.CRITICAL,
                            issue_type=CorsIssueType.WILDCARD_WITH_CREDENTIALS,
                            origin=allow_origin,
                            entry_index=idx,
                            message="CORS wildcard (*) used with credentials",
                        )
                    )
                elif allow_origin.lower().startswith("http://"):
                    issues.append(
                        CorsIssue(
                            severity=Severity.WARNING,
                            issue_type=CorsIssueType.INSECURE_ORIGIN,
                            origin=allow_origin,
                            entry_index=idx,
                            message="CORS allows insecure HTTP origin",
                        )
                    )
                continue

            request_origin = transaction.request.header("origin")
            if request_origin is not None:
                issues.append(
                    CorsIssue(
                        severity=Severity.INFO,
                        issue_type=CorsIssueType.MISSING_CORS_HEADERS,
                        origin=request_origin,
                        entry_index=idx,
                        message="Cross-origin request without CORS headers",
                    )
                )

        return issues

    # -------------------------------------------------------
    # Content-Security-Policy
    # -------------------------------------------------------

    def csp_findings(self, transactions):
        findings = []
        missing = 0

        for idx, transaction in enumerate(transactions):
            response = transaction.response
            if not is_html(response.content_type):
                continue

            policies = [h.value for h in response.headers if h.name.lower() in CSP_HEADERS]
            if not policies:
                missing += 1
                continue

            for policy in policies:
                findings.extend(_policy_findings(idx, policy))

        if missing:
            findings.append(
                CspFinding(
                    severity=Severity.INFO,
                    finding_type=CspFindingType.MISSING_CSP,
                    message="{} HTML response(s) without Content-Security-Policy header".format(
                        missing
                    ),
                )
            )

        return findings

    # -------------------------------------------------------
    # Refresh cadence
    # -------------------------------------------------------

    def refresh_patterns(self, transactions):
        refreshes = [
            (idx, transaction.started)
            for idx, transaction in enumerate(transactions)
            if is_token_refresh(transaction)
        ]

        if len(refreshes) < 2:
            return []

        count = len(refreshes)
        if count >= 3:
            pattern_type = RefreshPatternType.AUTOMATIC_ROTATION
        else:
            pattern_type = RefreshPatternType.ON_DEMAND_REFRESH

        return [
            TokenRefreshPattern(
                severity=Severity.INFO,
                pattern_type=pattern_type,
                refresh_count=count,
                entry_indices=[idx for idx, _ in refreshes],
                description="Token refreshed {} times during session".format(count),
                average_interval_ms=_average_interval([started for _, started in refreshes]),
            )
        ]


def _policy_findings(idx, policy):
    findings = []
    policy_lower = policy.lower()

    if "'unsafe-inline'" in policy_lower:
        findings.append(
            CspFinding(
                severity=Severity.WARNING,
                finding_type=CspFindingType.UNSAFE_INLINE,
                message="CSP allows 'unsafe-inline' (XSS risk)",
                entry_index=idx,
                policy=policy,
            )
        )

    if "'unsafe-eval'" in policy_lower:
        findings.append(
            CspFinding(
                severity=Severity.WARNING,
                finding_type=CspFindingType.UNSAFE_EVAL,
                message="CSP allows 'unsafe-eval' (code injection risk)",
                entry_index=idx,
                policy=policy,
            )
        )

    if _has_wildcard_source(policy_lower):
        findings.append(
            CspFinding(
                severity=Severity.WARNING,
                finding_type=CspFindingType.WILDCARD_SOURCE,
                message="CSP uses wildcard source (overly permissive)",
                entry_index=idx,
                policy=policy,
            )
        )

    return findings


def _has_wildcard_source(policy_lower):
    # a directive that also lists data: is exempt, e.g. "img-src * data:"
    for directive in policy_lower.split(";"):
        sources = directive.split()[1:]
        if "data:" in sources:
            continue
        if any("*" in source for source in sources):
            return True
    return False


def _has_credentials_in_query(url):
    url_lower = url.lower()
    has_user = "username=" in url_lower or "user=" in url_lower or "email=" in url_lower
    return has_user and "password=" in url_lower


def _has_sensitive_query(url):
    url_lower = url.lower()
    return any(key in url_lower for key in SENSITIVE_QUERY_KEYS)


def _average_interval(timestamps):
    points = [timestamp_ms(ts) for ts in timestamps]
    if any(point == 0.0 for point in points):
        return None
    gaps = [later - earlier for earlier, later in zip(points, points[1:])]
    return round(sum(gaps) / len(gaps), 3)
