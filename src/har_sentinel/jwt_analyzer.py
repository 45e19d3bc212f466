import json
import logging

from .config import DEFAULT_CONFIG
from .model import (
    JwtClaims,
    JwtHeader,
    JwtIssueType,
    JwtSecurityIssue,
    JwtToken,
    Severity,
)
from .patterns import JWT_IN_TEXT, is_json
from .utils import b64url_decode, bearer_token, find_string_field, is_jwt, to_int, truncate

logger = logging.getLogger(__name__)

BODY_TOKEN_FIELDS = ("token", "access_token", "accessToken", "id_token", "idToken")

HEADER_FIELDS = ("alg", "typ", "kid")
CLAIM_FIELDS = ("iss", "sub", "aud", "exp", "nbf", "iat", "jti")


class _Sighting:
    """Mutable accumulator for one token while the archive is scanned."""

    def __init__(self, token, header, claims, signature_present, timestamp, idx):
        self.token = token
        self.header = header
        self.claims = claims
        self.signature_present = signature_present
        self.first_seen = timestamp
        self.last_seen = timestamp
        self.entry_indices = [idx]

    def freeze(self):
        return JwtToken(
            raw_token=_token_preview(self.token),
            header=self.header,
            claims=self.claims,
            signature_present=self.signature_present,
            first_seen=self.first_seen,
            last_seen=self.last_seen,
            usage_count=len(self.entry_indices),
            entry_indices=list(self.entry_indices),
        )


class JwtAnalyzer:
    def __init__(self, config=None):
        if config is None:
            config = DEFAULT_CONFIG
        self.config = config

    def analyze(self, transactions):
        sightings = {}
        issues = []

        for idx, transaction in enumerate(transactions):
            request = transaction.request
            response = transaction.response

            for header in request.headers:
                if header.name.lower() != "authorization":
                    continue
                token = bearer_token(header.value)
                if token and is_jwt(token):
                    self._observe(token, idx, transaction.started, sightings, issues)

            if response.body and is_json(response.content_type):
                for field_name in BODY_TOKEN_FIELDS:
                    token = find_string_field(response.body, field_name)
                    if token and is_jwt(token):
                        self._observe(token, idx, transaction.started, sightings, issues)

            if _jwt_in_url(request.url):
                issues.append(
                    JwtSecurityIssue(
                        severity=Severity.CRITICAL,
                        issue_type=JwtIssueType.TOKEN_IN_URL,
                        message="JWT token transmitted in URL (visible in logs and history)",
                        token_preview=truncate(request.url, 80),
                        entry_index=idx,
                    )
                )

        tokens = [sighting.freeze() for sighting in sightings.values()]

        logger.debug("Found %d JWT token(s), %d issue(s)", len(tokens), len(issues))
        return tokens, issues

    # -------------------------------------------------------
    # Helper methods
    # -------------------------------------------------------

    def _observe(self, token, idx, timestamp, sightings, issues):
        key = token[:20]

        existing = sightings.get(key)
        if existing is not None:
            existing.last_seen = timestamp
            existing.entry_indices.append(idx)
            return

        try:
            header, claims = self._decode_header_and_claims(token)
        except ValueError as exc:
            logger.debug("Skipping undecodable JWT at entry %d: %s", idx, exc)
            return

        signature_present = token.split(".")[2] != ""
        sighting = _Sighting(token, header, claims, signature_present, timestamp, idx)
        sightings[key] = sighting

        issues.extend(self._check_token(sighting, idx))

    def _decode_header_and_claims(self, token):
        parts = token.split(".")

        if len(parts) != 3:
            raise ValueError("Token does not look like a JWT (needs 3 parts).")

        header = _decode_segment(parts[0], "header")
        payload = _decode_segment(parts[1], "payload")

        jwt_header = JwtHeader(
            alg=_string_or_none(header.get("alg")),
            typ=_string_or_none(header.get("typ")),
            kid=_string_or_none(header.get("kid")),
            other={k: v for k, v in header.items() if k not in HEADER_FIELDS},
        )

        aud = payload.get("aud")
        if not isinstance(aud, (str, list)):
            aud = None

        claims = JwtClaims(
            iss=_string_or_none(payload.get("iss")),
            sub=_string_or_none(payload.get("sub")),
            aud=aud,
            exp=to_int(payload.get("exp")),
            nbf=to_int(payload.get("nbf")),
            iat=to_int(payload.get("iat")),
            jti=_string_or_none(payload.get("jti")),
            other={k: v for k, v in payload.items() if k not in CLAIM_FIELDS},
        )

        return jwt_header, claims

    def _check_token(self, sighting, idx):
        issues = []
        preview = _token_preview(sighting.token)
        header = sighting.header
        claims = sighting.claims

        def add(severity, issue_type, message):
            issues.append(
                JwtSecurityIssue(
                    severity=severity,
                    issue_type=issue_type,
                    message=message,
                    token_preview=preview,
                    entry_index=idx,
                )
            )

        symmetric = [alg.lower() for alg in self.config.get("symmetric_algorithms", [])]

        if header.alg is not None:
            alg_lower = header.alg.lower()
            if alg_lower == "none":
                add(
                    Severity.CRITICAL,
                    JwtIssueType.NO_ALGORITHM,
                    "JWT using 'none' algorithm (no signature verification)",
                )
            elif alg_lower in symmetric:
                add(
                    Severity.INFO,
                    JwtIssueType.WEAK_ALGORITHM,
                    "JWT using symmetric algorithm {} (shared secret)".format(header.alg),
                )

        max_lifetime = int(self.config.get("long_lived_token_seconds", 86400))

        if claims.exp is None:
            add(
                Severity.WARNING,
                JwtIssueType.MISSING_EXPIRATION,
                "JWT missing expiration claim (exp)",
            )
        elif claims.iat is not None:
            lifetime = claims.exp - claims.iat
            if lifetime > max_lifetime:
                add(
                    Severity.WARNING,
                    JwtIssueType.LONG_LIVED_TOKEN,
                    "JWT has long lifetime: {} hours".format(lifetime // 3600),
                )

        if not sighting.signature_present:
            add(
                Severity.CRITICAL,
                JwtIssueType.MISSING_SIGNATURE,
                "JWT missing signature component",
            )

        return issues


def _decode_segment(segment, label):
    try:
        data = json.loads(b64url_decode(segment))
    except (ValueError, RecursionError) as exc:
        raise ValueError("Failed to decode JWT {}: {}".format(label, exc))

    if not isinstance(data, dict):
        raise ValueError("JWT {} must be a JSON object".format(label))

    return data


def _string_or_none(value):
    if isinstance(value, str):
        return value
    return None


def _token_preview(token):
    if len(token) > 50:
        return "{}...{}".format(token[:25], token[-25:])
    return token


def _jwt_in_url(url):
    return "Bearer%20" in url or JWT_IN_TEXT.search(url) is not None
