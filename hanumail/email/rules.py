"""Diagnostic rules applied to an analysed message."""

from __future__ import annotations

from dataclasses import dataclass, field
from email.utils import parsedate_to_datetime
from enum import IntEnum

from .headers import canonical_name
from .model import MessageAST, Span


class Severity(IntEnum):
    """Same numbering as the protocol's DiagnosticSeverity."""

    ERROR = 1
    WARNING = 2
    INFO = 3
    HINT = 4


@dataclass(frozen=True)
class Diagnostic:
    """A single finding, located by character offsets into the message."""

    span: Span
    severity: Severity
    code: str
    message: str

    def __str__(self) -> str:
        return f"{self.severity.name}: [{self.code}] {self.span.start}-{self.span.end} - {self.message}"


@dataclass(frozen=True)
class DiagnosticPolicy:
    """Tunable thresholds. Defaults follow RFC 5322."""

    required_headers: tuple[str, ...] = ("From", "Date", "Subject")
    singular_headers: tuple[str, ...] = ("Date", "From", "Message-ID")
    max_line_length: int = 998
    disabled_rules: frozenset[str] = field(default_factory=frozenset)


RULE_EXPLANATIONS: dict[str, str] = {
    "missing-header": "A header every message must carry is absent (RFC 5322 §3.6).",
    "duplicate-header": "A header that may appear only once is repeated; the later copies are flagged.",
    "invalid-address": "An address-list entry does not match `[\"Name\"] <local@domain>` or `local@domain`.",
    "line-too-long": "A header line is longer than the configured limit (RFC 5322 §2.1.1).",
    "malformed-header": "A line in the header block is neither `Name: value` nor a folded continuation.",
    "invalid-date": "The Date header is not a valid RFC 5322 date-time.",
}


def get_rule_ids() -> list[str]:
    return list(RULE_EXPLANATIONS)


class DiagnosticEngine:
    """Runs every enabled rule over a MessageAST."""

    def __init__(self, policy: DiagnosticPolicy | None = None):
        self.policy = policy or DiagnosticPolicy()

    def run_all(self, ast: MessageAST) -> list[Diagnostic]:
        """Compute all diagnostics from scratch, sorted by position."""
        checks = {
            "missing-header": self.check_missing_headers,
            "duplicate-header": self.check_duplicate_headers,
            "invalid-address": self.check_addresses,
            "line-too-long": self.check_line_length,
            "malformed-header": self.check_malformed_headers,
            "invalid-date": self.check_date,
        }
        results: list[Diagnostic] = []
        for rule_id, check in checks.items():
            if rule_id in self.policy.disabled_rules:
                continue
            results.extend(check(ast))
        results.sort(key=lambda d: (d.span.start, d.span.end, d.code, d.message))
        return results

    def check_missing_headers(self, ast: MessageAST) -> list[Diagnostic]:
        return [
            Diagnostic(
                span=Span(0, 0),
                severity=Severity.WARNING,
                code="missing-header",
                message=f"Missing required '{canonical_name(name)}' header",
            )
            for name in self.policy.required_headers
            if not ast.has(name)
        ]

    def check_duplicate_headers(self, ast: MessageAST) -> list[Diagnostic]:
        results = []
        for name in self.policy.singular_headers:
            for header in ast.get_all(name)[1:]:
                results.append(
                    Diagnostic(
                        span=header.span,
                        severity=Severity.ERROR,
                        code="duplicate-header",
                        message=f"Duplicate '{canonical_name(name)}' header; it may appear only once",
                    )
                )
        return results

    def check_addresses(self, ast: MessageAST) -> list[Diagnostic]:
        results = []
        for header in ast.headers:
            for mailbox in header.addresses:
                if mailbox.valid:
                    continue
                results.append(
                    Diagnostic(
                        span=mailbox.span,
                        severity=Severity.ERROR,
                        code="invalid-address",
                        message=f"Invalid address in '{header.name}': {mailbox.error}",
                    )
                )
        return results

    def check_line_length(self, ast: MessageAST) -> list[Diagnostic]:
        limit = self.policy.max_line_length
        results = []
        for header in ast.headers:
            for segment in header.segments:
                if segment.length > limit:
                    results.append(
                        Diagnostic(
                            span=Span(segment.start + limit, segment.end),
                            severity=Severity.WARNING,
                            code="line-too-long",
                            message=f"Header line is {segment.length} characters long (limit {limit})",
                        )
                    )
        return results

    def check_malformed_headers(self, ast: MessageAST) -> list[Diagnostic]:
        return [
            Diagnostic(
                span=header.segments[0],
                severity=Severity.ERROR,
                code="malformed-header",
                message=f"Malformed header line: {header.parse_error}",
            )
            for header in ast.malformed
        ]

    def check_date(self, ast: MessageAST) -> list[Diagnostic]:
        results = []
        for header in ast.get_all("Date"):
            try:
                parsedate_to_datetime(header.value)
            except (TypeError, ValueError, IndexError):
                results.append(
                    Diagnostic(
                        span=header.value_span,
                        severity=Severity.WARNING,
                        code="invalid-date",
                        message=f"'{header.value}' is not a valid RFC 5322 date-time",
                    )
                )
        return results
