"""
Read-only message views handed to the classifier by the message store.
"""

import re
from dataclasses import dataclass, field
from datetime import datetime

# Local part of machine senders, with an optional "+tag" suffix
AUTOMATED_PATTERNS = (
    re.compile(r"^(noreply|no-reply|donotreply|do-not-reply|notifications?)(\+[^@]*)?@", re.IGNORECASE),
    re.compile(r"^(system|automated|bot|service)(\+[^@]*)?@", re.IGNORECASE),
)


@dataclass(frozen=True, slots=True)
class ThreadMetadata:
    """Conversation-level facts about the thread a message belongs to."""

    message_count: int = 1
    participants: tuple[str, ...] = ()
    has_user_replied: bool = False


@dataclass(frozen=True, slots=True)
class EmailContext:
    """Immutable view of one message."""

    id: str
    thread_id: str
    subject: str
    sender: str
    to: tuple[str, ...]
    date: datetime
    body: str = ""
    has_attachments: bool = False
    attachment_types: tuple[str, ...] = ()
    thread: ThreadMetadata | None = None

    @property
    def sender_address(self) -> str:
        return normalize_email(self.sender)

    @property
    def sender_domain(self) -> str:
        address = self.sender_address
        return address.split("@", 1)[1] if "@" in address else ""


@dataclass(frozen=True, slots=True)
class EmailMeta:
    """Message identity copied onto a follow-up item at admission."""

    email_id: str
    thread_id: str
    subject: str
    sender: str
    to: tuple[str, ...] = field(default_factory=tuple)
    received_date: datetime | None = None

    @classmethod
    def from_context(cls, context: EmailContext) -> "EmailMeta":
        return cls(
            email_id=context.id,
            thread_id=context.thread_id,
            subject=context.subject,
            sender=context.sender,
            to=context.to,
            received_date=context.date,
        )


def normalize_email(value: str) -> str:
    """Lowercased bare address; 'Jane <Jane@X.com>' -> 'jane@x.com'."""
    value = (value or "").strip()
    if "<" in value and ">" in value:
        value = value[value.index("<") + 1 : value.rindex(">")]
    return value.strip().lower()


def is_automated_address(address: str) -> bool:
    return any(p.match(address) for p in AUTOMATED_PATTERNS)
