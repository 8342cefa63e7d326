"""
Keyword and header heuristics used by the classification engine.

Pure functions over message text; no I/O.
"""

import re

from inbox_triage.models.domain.email import EmailContext, is_automated_address
from inbox_triage.models.domain.enums import Priority, Sentiment

URGENT_KEYWORDS = (
    "urgent",
    "asap",
    "emergency",
    "critical",
    "immediately",
    "deadline today",
)
REPLY_REQUEST_PHRASES = (
    "please reply",
    "please respond",
    "let me know",
    "can you",
    "could you",
    "would you",
    "get back to me",
    "your thoughts",
    "rsvp",
)
WAITING_PHRASES = (
    "i'll get back to you",
    "i will get back to you",
    "will follow up",
    "i'll follow up",
    "will send it",
    "working on it",
    "looking into it",
    "will let you know",
)
NEGATIVE_WORDS = ("disappointed", "unacceptable", "frustrated", "complaint", "angry", "problem")
POSITIVE_WORDS = ("thank you", "thanks", "great", "appreciate", "congratulations", "well done")
DEADLINE_WORDS = ("today", "tomorrow", "eod", "end of day", "deadline", "due", "by friday")

RECURRING_PATTERNS = (
    re.compile(r"weekly\s+(update|report|digest)", re.IGNORECASE),
    re.compile(r"monthly\s+(statement|newsletter|summary)", re.IGNORECASE),
    re.compile(r"daily\s+(digest|briefing|report)", re.IGNORECASE),
)
EXECUTIVE_SENDER = re.compile(r"(ceo|president|director|manager)@", re.IGNORECASE)
BUSINESS_SENDER = re.compile(r"@(company|client|partner)\.com", re.IGNORECASE)


def _text(context: EmailContext) -> str:
    return f"{context.subject}\n{context.body}".lower()


def urgent_keyword_hits(context: EmailContext) -> int:
    text = _text(context)
    return sum(1 for k in URGENT_KEYWORDS if k in text)


def is_recurring(context: EmailContext) -> bool:
    return any(p.search(context.subject or "") for p in RECURRING_PATTERNS)


def is_newsletter(context: EmailContext) -> bool:
    sender = context.sender.lower()
    return (
        "unsubscribe" in (context.body or "").lower()
        or "newsletter" in sender
        or "noreply" in sender
    )


def is_automated(context: EmailContext) -> bool:
    return is_automated_address(context.sender_address)


def needs_reply(context: EmailContext) -> bool:
    if is_automated(context) or is_newsletter(context):
        return False
    text = _text(context)
    return "?" in (context.body or "") or any(p in text for p in REPLY_REQUEST_PHRASES)


def waiting_on_others(context: EmailContext) -> bool:
    if context.thread and context.thread.has_user_replied:
        return False
    text = _text(context)
    return any(p in text for p in WAITING_PHRASES)


def detect_sentiment(context: EmailContext) -> Sentiment:
    if urgent_keyword_hits(context):
        return Sentiment.URGENT
    text = _text(context)
    if any(w in text for w in NEGATIVE_WORDS):
        return Sentiment.NEGATIVE
    if any(w in text for w in POSITIVE_WORDS):
        return Sentiment.POSITIVE
    return Sentiment.NEUTRAL


def baseline_priority(context: EmailContext) -> Priority:
    if urgent_keyword_hits(context):
        return Priority.HIGH
    if is_newsletter(context) or is_automated(context):
        return Priority.LOW
    return Priority.MEDIUM


# =================================================================
# PRIORITY FACTORS (each in [0, 1])
# =================================================================


def sender_importance(context: EmailContext) -> float:
    sender = context.sender_address
    if EXECUTIVE_SENDER.search(sender):
        return 0.9
    if BUSINESS_SENDER.search(sender):
        return 0.7
    return 0.3


def keyword_urgency(context: EmailContext) -> float:
    return min(urgent_keyword_hits(context) * 0.2, 1.0)


def deadline_proximity(context: EmailContext) -> float:
    text = _text(context)
    if "today" in text or "eod" in text or "end of day" in text:
        return 1.0
    if "tomorrow" in text:
        return 0.7
    if any(w in text for w in DEADLINE_WORDS):
        return 0.4
    return 0.0


def sentiment_urgency(sentiment: Sentiment) -> float:
    return {
        Sentiment.URGENT: 1.0,
        Sentiment.NEGATIVE: 0.6,
        Sentiment.NEUTRAL: 0.2,
        Sentiment.POSITIVE: 0.1,
    }[sentiment]


def contextual_clues(context: EmailContext) -> float:
    score = 0.0
    if context.has_attachments:
        score += 0.4
    if context.thread and context.thread.message_count > 2:
        score += 0.3
    if len(context.to) == 1:
        score += 0.3
    return min(score, 1.0)


def urgency_score(context: EmailContext, priority: Priority) -> float:
    """0-100 blend of priority level, urgent keywords and deadline phrases."""
    base = {Priority.CRITICAL: 80, Priority.HIGH: 60, Priority.MEDIUM: 40, Priority.LOW: 20}[
        priority
    ]
    score = base + 10 * keyword_urgency(context) + 10 * deadline_proximity(context)
    return float(min(score, 100))
