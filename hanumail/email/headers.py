"""Catalogue of well-known message header fields."""

from __future__ import annotations

# Canonical spelling -> one-line description shown on hover and completion.
KNOWN_HEADERS: dict[str, str] = {
    "From": "Author(s) of the message (RFC 5322 §3.6.2)",
    "Sender": "Mailbox of the agent that sent the message on behalf of the author (RFC 5322 §3.6.2)",
    "Reply-To": "Mailbox(es) replies should be directed to (RFC 5322 §3.6.2)",
    "To": "Primary recipients (RFC 5322 §3.6.3)",
    "Cc": "Carbon-copy recipients (RFC 5322 §3.6.3)",
    "Bcc": "Blind carbon-copy recipients, removed before delivery (RFC 5322 §3.6.3)",
    "Date": "Origination date of the message (RFC 5322 §3.6.1)",
    "Subject": "Topic of the message (RFC 5322 §3.6.5)",
    "Message-ID": "Globally unique identifier of this message (RFC 5322 §3.6.4)",
    "In-Reply-To": "Message-ID(s) of the message(s) this one replies to (RFC 5322 §3.6.4)",
    "References": "Message-IDs of the thread this message belongs to (RFC 5322 §3.6.4)",
    "Comments": "Free-form comments on the message body (RFC 5322 §3.6.5)",
    "Keywords": "Comma-separated keywords (RFC 5322 §3.6.5)",
    "Return-Path": "Address bounces are returned to, added on final delivery (RFC 5322 §3.6.7)",
    "Received": "Trace record added by each relaying server (RFC 5322 §3.6.7)",
    "Resent-Date": "Date the message was resent (RFC 5322 §3.6.6)",
    "Resent-From": "Author(s) of the resend (RFC 5322 §3.6.6)",
    "Resent-Sender": "Agent that resent the message (RFC 5322 §3.6.6)",
    "Resent-To": "Recipients of the resend (RFC 5322 §3.6.6)",
    "Resent-Cc": "Carbon-copy recipients of the resend (RFC 5322 §3.6.6)",
    "Resent-Bcc": "Blind carbon-copy recipients of the resend (RFC 5322 §3.6.6)",
    "Resent-Message-ID": "Identifier of the resent message (RFC 5322 §3.6.6)",
    "MIME-Version": "MIME version, always 1.0 (RFC 2045 §4)",
    "Content-Type": "Media type of the body (RFC 2045 §5)",
    "Content-Transfer-Encoding": "Encoding applied to the body for transport (RFC 2045 §6)",
    "Content-Disposition": "Presentation hint for the body or part (RFC 2183)",
    "Content-ID": "Identifier of a MIME part (RFC 2045 §7)",
    "Content-Description": "Description of a MIME part (RFC 2045 §8)",
    "Content-Language": "Language(s) of the content (RFC 3282)",
    "List-Id": "Identifier of the mailing list (RFC 2919)",
    "List-Post": "How to post to the mailing list (RFC 2369)",
    "List-Unsubscribe": "How to unsubscribe from the mailing list (RFC 2369)",
    "Auto-Submitted": "Marks automatically generated messages (RFC 3834)",
    "Disposition-Notification-To": "Where read receipts should be sent (RFC 8098)",
    "Importance": "Sender-assigned importance (RFC 2156)",
    "Priority": "Sender-assigned priority (RFC 2156)",
    "X-Priority": "Client priority hint, 1 (highest) to 5 (lowest)",
    "Organization": "Organisation of the sender",
    "User-Agent": "Software that composed the message",
}

_CANONICAL = {name.lower(): name for name in KNOWN_HEADERS}

ADDRESS_HEADERS = frozenset(
    {
        "from",
        "sender",
        "reply-to",
        "to",
        "cc",
        "bcc",
        "resent-from",
        "resent-sender",
        "resent-to",
        "resent-cc",
        "resent-bcc",
    }
)

MESSAGE_ID_HEADERS = frozenset({"message-id", "resent-message-id", "in-reply-to", "references"})

# Headers that point at another message by its Message-ID.
REFERENCE_HEADERS = frozenset({"in-reply-to", "references"})

VALUE_DOMAINS: dict[str, tuple[str, ...]] = {
    "content-type": (
        "text/plain",
        "text/html",
        "text/markdown",
        "multipart/alternative",
        "multipart/mixed",
        "multipart/related",
        "multipart/signed",
        "message/rfc822",
        "application/octet-stream",
        "application/pdf",
        "image/png",
        "image/jpeg",
    ),
    "content-transfer-encoding": ("7bit", "8bit", "binary", "quoted-printable", "base64"),
    "content-disposition": ("inline", "attachment"),
    "mime-version": ("1.0",),
    "importance": ("low", "normal", "high"),
    "priority": ("non-urgent", "normal", "urgent"),
    "x-priority": ("1 (Highest)", "2 (High)", "3 (Normal)", "4 (Low)", "5 (Lowest)"),
    "auto-submitted": ("no", "auto-generated", "auto-replied"),
}


def canonical_name(name: str) -> str:
    """Known spelling of a header name, or the name unchanged."""
    return _CANONICAL.get(name.lower(), name)


def describe(name: str) -> str | None:
    return KNOWN_HEADERS.get(canonical_name(name))


def value_domain(name: str) -> tuple[str, ...]:
    return VALUE_DOMAINS.get(name.lower(), ())
