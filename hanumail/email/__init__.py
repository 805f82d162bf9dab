"""
Email message analysis.

- parser: line scanner producing a MessageAST with best-effort recovery
- addresses: address-list grammar for From/To/Cc style headers
- rules: diagnostic engine over a MessageAST
- reflow: quote-aware body reflow
"""

from .model import Body, Header, Mailbox, MessageAST, Span
from .parser import parse_message
from .rules import Diagnostic, DiagnosticEngine, DiagnosticPolicy, Severity

__all__ = [
    "Body",
    "Diagnostic",
    "DiagnosticEngine",
    "DiagnosticPolicy",
    "Header",
    "Mailbox",
    "MessageAST",
    "Severity",
    "Span",
    "parse_message",
]
