import argparse
import json
import logging
import sys

from .analyzer import AuthAnalyzer, result_to_json_dict
from .config import load_config
from .har import load_har
from .summary import aggregate_findings, summarize
from . import __version__


def _format_text_report(analysis):
    lines = []

    lines.append("HAR Authentication Report")
    lines.append("=========================")
    lines.append("")

    lines.append("Methods:")
    if len(analysis.methods) == 0:
        lines.append("  None detected.")
    for method in analysis.methods:
        if method.header_name:
            lines.append("  - {} ({})".format(method.label, method.header_name))
        else:
            lines.append("  - {}".format(method.label))
    lines.append("")

    lines.append("Sessions:")
    if len(analysis.sessions) == 0:
        lines.append("  None detected.")
    for session in analysis.sessions:
        lines.append(
            "  - [{}] {} ({} requests, {} ms)".format(
                session.session_type.value,
                session.identifier,
                session.request_count,
                session.duration_ms,
            )
        )
    lines.append("")

    lines.append("Flows:")
    if len(analysis.flows) == 0 and len(analysis.saml_flows) == 0:
        lines.append("  None detected.")
    for flow in analysis.flows:
        lines.append("  - {} ({} ms)".format(flow.label, flow.duration_ms))
        _append_steps(lines, flow.steps)
    for flow in analysis.saml_flows:
        lines.append("  - {} ({} ms)".format(flow.flow_type.label, flow.duration_ms))
        _append_steps(lines, flow.steps)
    lines.append("")

    lines.append("Events:")
    if len(analysis.events) == 0:
        lines.append("  None detected.")
    for event in analysis.events:
        line = "  - [{}] {} {} -> {}".format(
            event.event_type.label, event.method, event.url, event.status
        )
        lines.append(line)
        if event.details.error_message:
            lines.append("      Error: {}".format(event.details.error_message))
    lines.append("")

    lines.append("JWT tokens:")
    if len(analysis.jwt_tokens) == 0:
        lines.append("  None detected.")
    for token in analysis.jwt_tokens:
        lines.append(
            "  - alg={} sub={} used {} time(s)".format(
                token.header.alg, token.claims.sub, token.usage_count
            )
        )
    lines.append("")

    lines.append("Findings:")
    findings = _collect_findings(analysis)
    if len(findings) == 0:
        lines.append("  None. No rules fired (this does not guarantee security).")
    for severity, message, entry_index in findings:
        if entry_index is None:
            lines.append("  - [{}] {}".format(severity.upper(), message))
        else:
            lines.append("  - [{}] {} (entry {})".format(severity.upper(), message, entry_index))

    return "\n".join(lines)


def _append_steps(lines, steps):
    for step in steps:
        lines.append(
            "      {}. {} {} -> {} ({})".format(
                step.entry_index, step.method, step.url, step.status, step.description
            )
        )


def _collect_findings(analysis):
    findings = []

    for issue in analysis.jwt_issues:
        findings.append((issue.severity, issue.message, issue.entry_index))
    for issue in analysis.saml_issues:
        findings.append((issue.severity, issue.message, issue.entry_index))
    for note in analysis.security_notes:
        message = note.message
        if note.subject:
            message = "{}: {}".format(note.subject, message)
        findings.append((note.severity, message, note.entry_index))

    advanced = analysis.advanced_security
    for exposure in advanced.token_exposures:
        findings.append((exposure.severity, exposure.message, exposure.entry_index))
    for issue in advanced.cors_issues:
        findings.append((issue.severity, issue.message, issue.entry_index))
    for finding in advanced.csp_findings:
        findings.append((finding.severity, finding.message, finding.entry_index))
    for pattern in advanced.refresh_patterns:
        findings.append((pattern.severity, pattern.description, None))

    # most severe first, archive order otherwise
    findings.sort(key=lambda f: f[0].rank, reverse=True)
    return findings


def _format_summary(summary):
    lines = []

    primary = summary.primary_method
    lines.append("Authentication Summary")
    lines.append("======================")
    lines.append("Primary method   : {} ({} confidence)".format(
        primary.method_type, primary.confidence.value
    ))
    lines.append("                   {}".format(primary.description))
    lines.append("Session mechanism: {}".format(summary.session_mechanism.mechanism_type))
    lines.append("                   {}".format(summary.session_mechanism.details))
    lines.append("")

    if summary.key_endpoints:
        lines.append("Key endpoints:")
        for endpoint in summary.key_endpoints:
            lines.append("  - {} {} ({})".format(endpoint.method, endpoint.path, endpoint.purpose))
        lines.append("")

    for info in summary.additional_info:
        lines.append("* {}".format(info))
    if summary.additional_info:
        lines.append("")

    lines.append("Scan configuration ({}):".format(summary.scan_config.auth_type))
    lines.append(summary.scan_config.config_snippet.rstrip())
    for note in summary.scan_config.notes:
        lines.append("  Note: {}".format(note))

    return "\n".join(lines)


def _format_findings(findings_view):
    lines = []

    lines.append("Security Findings")
    lines.append("=================")

    buckets = [
        ("Critical", findings_view.critical),
        ("Warnings", findings_view.warnings),
        ("Info", findings_view.info),
    ]
    for title, findings in buckets:
        lines.append("{} ({}):".format(title, len(findings)))
        for finding in findings:
            lines.append(
                "  - {} - {} (x{}, e.g. entries {})".format(
                    finding.category,
                    finding.message,
                    finding.count,
                    ", ".join(str(idx) for idx in finding.sample_entries) or "n/a",
                )
            )

    return "\n".join(lines)


def build_arg_parser():
    parser = argparse.ArgumentParser(
        prog="har-sentinel",
        description="HAR Authentication Analyzer - reconstruct login flows and flag "
        "authentication weaknesses in recorded HTTP traffic.",
    )

    parser.add_argument(
        "--version",
        action="version",
        version="har-sentinel {}".format(__version__),
    )

    parser.add_argument(
        "har_file",
        metavar="HAR_FILE",
        help="Path to the HAR archive to analyse.",
    )

    parser.add_argument(
        "--config",
        help="Path to a JSON config file to override defaults.",
    )

    parser.add_argument(
        "--output",
        choices=["text", "json"],
        default="text",
        help="Output format. Defaults to 'text'.",
    )

    parser.add_argument(
        "--summary",
        action="store_true",
        help="Include the authentication summary and scan configuration.",
    )

    parser.add_argument(
        "--findings",
        action="store_true",
        help="Include the deduplicated security findings view.",
    )

    parser.add_argument(
        "--verbose",
        action="store_true",
        help="Enable debug logging.",
    )

    return parser


def main(argv=None):
    parser = build_arg_parser()
    args = parser.parse_args(argv)

    if args.verbose:
        logging.basicConfig(level=logging.DEBUG)

    try:
        config = load_config(args.config)
    except (OSError, ValueError) as exc:
        print("Error loading config: {}".format(exc), file=sys.stderr)
        sys.exit(1)

    try:
        transactions = load_har(args.har_file)
    except (OSError, ValueError) as exc:
        print("Error reading HAR file: {}".format(exc), file=sys.stderr)
        sys.exit(1)

    analysis = AuthAnalyzer(config).analyze(transactions)

    summary = None
    if args.summary:
        summary = summarize(analysis, config)

    findings_view = None
    if args.findings:
        findings_view = aggregate_findings(analysis, config)

    if args.output == "json":
        data = result_to_json_dict(analysis)
        if summary is not None:
            data["summary"] = result_to_json_dict(summary)
        if findings_view is not None:
            data["findings"] = result_to_json_dict(findings_view)
        json_text = json.dumps(data, indent=2, sort_keys=True)
        print(json_text)
    else:
        sections = [_format_text_report(analysis)]
        if summary is not None:
            sections.append(_format_summary(summary))
        if findings_view is not None:
            sections.append(_format_findings(findings_view))
        print("\n\n".join(sections))
