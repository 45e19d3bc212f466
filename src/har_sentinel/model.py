from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, NamedTuple, Optional


class Severity(str, Enum):
    INFO = "info"
    WARNING = "warning"
    CRITICAL = "critical"

    @property
    def rank(self) -> int:
        return _SEVERITY_RANK[self]

    def __lt__(self, other):
        if not isinstance(other, Severity):
            return NotImplemented
        return self.rank < other.rank

    def __le__(self, other):
        if not isinstance(other, Severity):
            return NotImplemented
        return self.rank <= other.rank

    def __gt__(self, other):
        if not isinstance(other, Severity):
            return NotImplemented
        return self.rank > other.rank

    def __ge__(self, other):
        if not isinstance(other, Severity):
            return NotImplemented
        return self.rank >= other.rank


_SEVERITY_RANK = {Severity.INFO: 0, Severity.WARNING: 1, Severity.CRITICAL: 2}


# -------------------------------------------------------
# Methods
# -------------------------------------------------------


class AuthMethodKind(str, Enum):
    BASIC = "basic"
    BEARER = "bearer"
    API_KEY = "api_key"
    OAUTH = "oauth"
    JWT = "jwt"
    COOKIE = "cookie"
    CUSTOM = "custom"


_METHOD_LABELS = {
    AuthMethodKind.BASIC: "Basic Auth",
    AuthMethodKind.BEARER: "Bearer Token",
    AuthMethodKind.API_KEY: "API Key",
    AuthMethodKind.OAUTH: "OAuth",
    AuthMethodKind.JWT: "JWT",
    AuthMethodKind.COOKIE: "Cookie-based",
    AuthMethodKind.CUSTOM: "Custom",
}


@dataclass(frozen=True)
class AuthMethod:
    kind: AuthMethodKind
    header_name: Optional[str] = None  # only for API_KEY and CUSTOM

    @property
    def label(self) -> str:
        return _METHOD_LABELS[self.kind]


# -------------------------------------------------------
# Sessions
# -------------------------------------------------------


class SessionKind(str, Enum):
    COOKIE = "cookie"
    BEARER_TOKEN = "bearer_token"
    API_KEY = "api_key"


@dataclass(frozen=True)
class SessionAttributes:
    http_only: Optional[bool]
    secure: Optional[bool]
    same_site: Optional[str]  # HAR cookies never carry SameSite
    expires: Optional[str]
    path: Optional[str]
    domain: Optional[str]


@dataclass(frozen=True)
class AuthSession:
    session_type: SessionKind
    identifier: str
    first_seen: str
    last_seen: str
    request_count: int
    duration_ms: float
    entry_indices: List[int]
    cookie_name: Optional[str] = None
    is_jwt: bool = False
    header_name: Optional[str] = None
    attributes: Optional[SessionAttributes] = None


# -------------------------------------------------------
# Flows
# -------------------------------------------------------


class FlowType(str, Enum):
    OAUTH2_AUTHORIZATION_CODE = "oauth2_authorization_code"
    OAUTH2_CLIENT_CREDENTIALS = "oauth2_client_credentials"
    OAUTH2_IMPLICIT = "oauth2_implicit"
    FORM_BASED = "form_based"
    JSON_API = "json_api"

    @property
    def is_oauth2(self) -> bool:
        return self.value.startswith("oauth2_")


class FlowRole(str, Enum):
    LOGIN_PAGE = "login_page"
    CREDENTIALS_SUBMISSION = "credentials_submission"
    AUTHORIZATION_REQUEST = "authorization_request"
    AUTHORIZATION_CALLBACK = "authorization_callback"
    TOKEN_EXCHANGE = "token_exchange"
    TOKEN_RESPONSE = "token_response"
    FIRST_AUTHENTICATED_REQUEST = "first_authenticated_request"


@dataclass(frozen=True)
class FlowStep:
    entry_index: int
    timestamp: str
    role: FlowRole
    method: str
    url: str
    status: int
    description: str


@dataclass(frozen=True)
class AuthFlow:
    flow_type: FlowType
    start_time: str
    end_time: str
    duration_ms: float
    steps: List[FlowStep]
    pkce: bool = False

    @property
    def label(self) -> str:
        if self.flow_type is FlowType.OAUTH2_AUTHORIZATION_CODE:
            if self.pkce:
                return "OAuth 2.0 Authorization Code (with PKCE)"
            return "OAuth 2.0 Authorization Code"
        return {
            FlowType.OAUTH2_CLIENT_CREDENTIALS: "OAuth 2.0 Client Credentials",
            FlowType.OAUTH2_IMPLICIT: "OAuth 2.0 Implicit",
            FlowType.FORM_BASED: "Form-based Login",
            FlowType.JSON_API: "JSON API Authentication",
        }[self.flow_type]


class SamlFlowType(str, Enum):
    SP_INITIATED = "sp_initiated"
    IDP_INITIATED = "idp_initiated"
    LOGOUT = "logout"

    @property
    def label(self) -> str:
        return {
            SamlFlowType.SP_INITIATED: "SAML SP-Initiated SSO",
            SamlFlowType.IDP_INITIATED: "SAML IdP-Initiated SSO",
            SamlFlowType.LOGOUT: "SAML Single Logout",
        }[self]


class SamlStepRole(str, Enum):
    AUTHN_REQUEST = "authn_request"
    IDP_REDIRECT = "idp_redirect"
    SAML_RESPONSE = "saml_response"
    ASSERTION_CONSUMER_SERVICE = "assertion_consumer_service"
    LOGOUT_REQUEST = "logout_request"
    LOGOUT_RESPONSE = "logout_response"


@dataclass(frozen=True)
class SamlStep:
    entry_index: int
    timestamp: str
    role: SamlStepRole
    method: str
    url: str
    status: int
    description: str


@dataclass(frozen=True)
class SamlFlow:
    flow_type: SamlFlowType
    start_time: str
    end_time: str
    duration_ms: float
    steps: List[SamlStep]


@dataclass(frozen=True)
class SamlSecurityIssue:
    severity: Severity
    message: str
    entry_index: int


# -------------------------------------------------------
# Events
# -------------------------------------------------------


class AuthEventType(str, Enum):
    LOGIN_SUCCESS = "login_success"
    LOGIN_FAILURE = "login_failure"
    LOGOUT = "logout"
    TOKEN_REFRESH = "token_refresh"
    SESSION_EXPIRED = "session_expired"
    PASSWORD_RESET = "password_reset"

    @property
    def label(self) -> str:
        return self.value.replace("_", " ").title()


@dataclass(frozen=True)
class EventDetails:
    description: str
    credential_type: Optional[str] = None
    error_message: Optional[str] = None


@dataclass(frozen=True)
class AuthEvent:
    event_type: AuthEventType
    timestamp: str
    entry_index: int
    method: str
    url: str
    status: int
    details: EventDetails


# -------------------------------------------------------
# JWT
# -------------------------------------------------------


@dataclass(frozen=True)
class JwtHeader:
    alg: Optional[str] = None
    typ: Optional[str] = None
    kid: Optional[str] = None
    other: Dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class JwtClaims:
    iss: Optional[str] = None
    sub: Optional[str] = None
    aud: Optional[Any] = None  # a string or a list of strings
    exp: Optional[int] = None
    nbf: Optional[int] = None
    iat: Optional[int] = None
    jti: Optional[str] = None
    other: Dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class JwtToken:
    raw_token: str
    header: JwtHeader
    claims: JwtClaims
    signature_present: bool
    first_seen: str
    last_seen: str
    usage_count: int
    entry_indices: List[int]


class JwtIssueType(str, Enum):
    WEAK_ALGORITHM = "weak_algorithm"
    NO_ALGORITHM = "no_algorithm"
    MISSING_EXPIRATION = "missing_expiration"
    TOKEN_IN_URL = "token_in_url"
    LONG_LIVED_TOKEN = "long_lived_token"
    MISSING_SIGNATURE = "missing_signature"


@dataclass(frozen=True)
class JwtSecurityIssue:
    severity: Severity
    issue_type: JwtIssueType
    message: str
    token_preview: str
    entry_index: Optional[int] = None


# -------------------------------------------------------
# Security notes and advanced findings
# -------------------------------------------------------


@dataclass(frozen=True)
class SecurityNote:
    severity: Severity
    category: str
    message: str
    entry_index: Optional[int] = None
    subject: Optional[str] = None  # e.g. the cookie name a note is about


class ExposureType(str, Enum):
    TOKEN_IN_URL = "token_in_url"
    CREDENTIALS_IN_URL = "credentials_in_url"
    SENSITIVE_DATA_IN_URL = "sensitive_data_in_url"
    TOKEN_IN_REFERER = "token_in_referer"


@dataclass(frozen=True)
class TokenExposure:
    severity: Severity
    exposure_type: ExposureType
    location: str
    entry_index: int
    message: str


class CorsIssueType(str, Enum):
    WILDCARD_WITH_CREDENTIALS = "wildcard_with_credentials"
    INSECURE_ORIGIN = "insecure_origin"
    MISSING_CORS_HEADERS = "missing_cors_headers"


@dataclass(frozen=True)
class CorsIssue:
    severity: Severity
    issue_type: CorsIssueType
    origin: str
    entry_index: int
    message: str


class CspFindingType(str, Enum):
    MISSING_CSP = "missing_csp"
    UNSAFE_INLINE = "unsafe_inline"
    UNSAFE_EVAL = "unsafe_eval"
    WILDCARD_SOURCE = "wildcard_source"


@dataclass(frozen=True)
class CspFinding:
    severity: Severity
    finding_type: CspFindingType
    message: str
    entry_index: Optional[int] = None
    policy: Optional[str] = None


class RefreshPatternType(str, Enum):
    ON_DEMAND_REFRESH = "on_demand_refresh"
    AUTOMATIC_ROTATION = "automatic_rotation"


@dataclass(frozen=True)
class TokenRefreshPattern:
    severity: Severity
    pattern_type: RefreshPatternType
    refresh_count: int
    entry_indices: List[int]
    description: str
    average_interval_ms: Optional[float] = None


@dataclass(frozen=True)
class AdvancedSecurityAnalysis:
    token_exposures: List[TokenExposure] = field(default_factory=list)
    cors_issues: List[CorsIssue] = field(default_factory=list)
    csp_findings: List[CspFinding] = field(default_factory=list)
    refresh_patterns: List[TokenRefreshPattern] = field(default_factory=list)


@dataclass(frozen=True)
class AuthAnalysis:
    methods: List[AuthMethod] = field(default_factory=list)
    sessions: List[AuthSession] = field(default_factory=list)
    flows: List[AuthFlow] = field(default_factory=list)
    events: List[AuthEvent] = field(default_factory=list)
    security_notes: List[SecurityNote] = field(default_factory=list)
    jwt_tokens: List[JwtToken] = field(default_factory=list)
    jwt_issues: List[JwtSecurityIssue] = field(default_factory=list)
    saml_flows: List[SamlFlow] = field(default_factory=list)
    saml_issues: List[SamlSecurityIssue] = field(default_factory=list)
    advanced_security: AdvancedSecurityAnalysis = field(
        default_factory=AdvancedSecurityAnalysis
    )


# -------------------------------------------------------
# Summary views
# -------------------------------------------------------


class ConfidenceLevel(str, Enum):
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"


@dataclass(frozen=True)
class AuthMethodSummary:
    method_type: str
    description: str
    confidence: ConfidenceLevel


@dataclass(frozen=True)
class SessionMechanismSummary:
    mechanism_type: str
    details: str


@dataclass(frozen=True)
class EndpointInfo:
    method: str
    path: str
    purpose: str


@dataclass(frozen=True)
class ScanConfig:
    auth_type: str  # cookie, token, oauth2, header or unknown
    config_snippet: str
    notes: List[str] = field(default_factory=list)


@dataclass(frozen=True)
class AuthenticationSummary:
    primary_method: AuthMethodSummary
    session_mechanism: SessionMechanismSummary
    key_endpoints: List[EndpointInfo]
    scan_config: ScanConfig
    additional_info: List[str]


class FindingKey(NamedTuple):
    category: str
    message: str


@dataclass(frozen=True)
class AggregatedFinding:
    severity: Severity
    category: str
    message: str
    count: int
    sample_entries: List[int]


@dataclass(frozen=True)
class SecurityFindingsSummary:
    critical: List[AggregatedFinding] = field(default_factory=list)
    warnings: List[AggregatedFinding] = field(default_factory=list)
    info: List[AggregatedFinding] = field(default_factory=list)
