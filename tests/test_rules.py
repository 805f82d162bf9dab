"""Golden tests for the diagnostic rules."""

from hanumail.email.model import Span
from hanumail.email.parser import parse_message
from hanumail.email.rules import DiagnosticEngine, DiagnosticPolicy, Severity, get_rule_ids

from .conftest import SIMPLE_MESSAGE


def _codes(diagnostics):
    return [d.code for d in diagnostics]


def test_clean_message_has_no_findings():
    assert DiagnosticEngine().run_all(parse_message(SIMPLE_MESSAGE)) == []


def test_missing_headers_scenario():
    diagnostics = DiagnosticEngine().run_all(parse_message("Date: x\r\n\r\nbody"))
    missing = [d for d in diagnostics if d.code == "missing-header"]
    assert len(missing) == 2
    assert sum("'From'" in d.message for d in missing) == 1
    assert sum("'Subject'" in d.message for d in missing) == 1
    assert all(d.span == Span(0, 0) and d.severity == Severity.WARNING for d in missing)
    assert "malformed-header" not in _codes(diagnostics)


def test_duplicate_from_flags_second_occurrence():
    text = "From: a@x.org\r\nFrom: b@y.org\r\nDate: Tue, 1 Jul 2025 10:00:00 +0000\r\nSubject: s\r\n\r\n"
    diagnostics = DiagnosticEngine().run_all(parse_message(text))
    duplicates = [d for d in diagnostics if d.code == "duplicate-header"]
    assert len(duplicates) == 1
    second = text.index("From: b@y.org")
    assert duplicates[0].span.start == second
    assert duplicates[0].severity == Severity.ERROR


def test_invalid_address_range():
    text = "From: a@x.org\nTo: ok@x.org, broken\nDate: Tue, 1 Jul 2025 10:00:00 +0000\nSubject: s\n\n"
    (diag,) = DiagnosticEngine().run_all(parse_message(text))
    assert diag.code == "invalid-address"
    assert text[diag.span.start : diag.span.end] == "broken"


def test_line_too_long_uses_policy():
    text = "From: a@x.org\nDate: Tue, 1 Jul 2025 10:00:00 +0000\nSubject: " + "x" * 80 + "\n\n"
    assert DiagnosticEngine().run_all(parse_message(text)) == []

    engine = DiagnosticEngine(DiagnosticPolicy(max_line_length=78))
    (diag,) = engine.run_all(parse_message(text))
    assert diag.code == "line-too-long"
    line_start = text.index("Subject")
    assert diag.span.start == line_start + 78
    assert diag.span.end == text.index("\n", line_start)


def test_malformed_header_range_is_the_line():
    text = "From: a@x.org\nnonsense\nDate: Tue, 1 Jul 2025 10:00:00 +0000\nSubject: s\n\n"
    (diag,) = DiagnosticEngine().run_all(parse_message(text))
    assert diag.code == "malformed-header"
    assert text[diag.span.start : diag.span.end] == "nonsense"


def test_invalid_date():
    text = "From: a@x.org\nDate: yesterday\nSubject: s\n\n"
    (diag,) = DiagnosticEngine().run_all(parse_message(text))
    assert diag.code == "invalid-date"


def test_disabled_rules_and_custom_required_headers():
    policy = DiagnosticPolicy(required_headers=("To",), disabled_rules=frozenset({"invalid-date"}))
    diagnostics = DiagnosticEngine(policy).run_all(parse_message("Date: nope\n\n"))
    assert _codes(diagnostics) == ["missing-header"]
    assert "'To'" in diagnostics[0].message


def test_output_is_sorted_and_in_bounds():
    text = "X-Bad header\nFrom: a@x.org, b\nFrom: c@y.org\nDate: ?\n\nbody"
    diagnostics = DiagnosticEngine().run_all(parse_message(text))
    keys = [(d.span.start, d.span.end, d.code, d.message) for d in diagnostics]
    assert keys == sorted(keys)
    for d in diagnostics:
        assert 0 <= d.span.start <= d.span.end <= len(text)


def test_rule_ids_cover_engine():
    assert set(get_rule_ids()) == {
        "missing-header",
        "duplicate-header",
        "invalid-address",
        "line-too-long",
        "malformed-header",
        "invalid-date",
    }


def test_bare_from_line_is_a_malformed_header():
    text = "From alice@example.com\r\nDate: x\r\nSubject: s\r\n\r\nbody"
    diagnostics = DiagnosticEngine().run_all(parse_message(text))
    (malformed,) = [d for d in diagnostics if d.code == "malformed-header"]
    assert malformed.span.start == 0
