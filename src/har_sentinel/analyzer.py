import logging
from dataclasses import asdict

from .advanced import AdvancedSecurityAnalyzer
from .config import make_config
from .events import EventDetector
from .flows import FlowDetector
from .jwt_analyzer import JwtAnalyzer
from .methods import MethodDetector, sorted_methods
from .model import AuthAnalysis
from .saml import SamlDetector
from .security import SecurityNoteAnalyzer
from .sessions import SessionTracker

logger = logging.getLogger(__name__)


class AuthAnalyzer:
    def __init__(self, config=None):
        if config is None:
            config = make_config()
        self.config = config

    def analyze(self, transactions):
        transactions = list(transactions)

        methods = sorted_methods(MethodDetector().detect(transactions))
        logger.debug("methods: %d", len(methods))

        sessions = SessionTracker().track(transactions)
        logger.debug("sessions: %d", len(sessions))

        flows = FlowDetector(self.config).detect(transactions)
        logger.debug("flows: %d", len(flows))

        events = EventDetector(self.config).detect(transactions)
        logger.debug("events: %d", len(events))

        security_notes = SecurityNoteAnalyzer(self.config).analyze(
            transactions, methods, sessions
        )
        logger.debug("security notes: %d", len(security_notes))

        jwt_tokens, jwt_issues = JwtAnalyzer(self.config).analyze(transactions)
        logger.debug("jwt tokens: %d, jwt issues: %d", len(jwt_tokens), len(jwt_issues))

        saml_flows, saml_issues = SamlDetector(self.config).detect(transactions)
        logger.debug("saml flows: %d, saml issues: %d", len(saml_flows), len(saml_issues))

        advanced_security = AdvancedSecurityAnalyzer().analyze(transactions)

        analysis = AuthAnalysis(
            methods=methods,
            sessions=sessions,
            flows=flows,
            events=events,
            security_notes=security_notes,
            jwt_tokens=jwt_tokens,
            jwt_issues=jwt_issues,
            saml_flows=saml_flows,
            saml_issues=saml_issues,
            advanced_security=advanced_security,
        )

        logger.info(
            "Analyzed %d transaction(s): %d method(s), %d session(s), %d flow(s), "
            "%d event(s), %d JWT(s)",
            len(transactions),
            len(methods),
            len(sessions),
            len(flows),
            len(events),
            len(jwt_tokens),
        )
        return analysis


def analyze(transactions, config=None):
    return AuthAnalyzer(config).analyze(transactions)


def result_to_json_dict(result):
    """
    Convert a result dataclass (analysis, summary, findings view) into
    plain dicts and lists for JSON output.
    """
    return asdict(result)
