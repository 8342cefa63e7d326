"""Email triage: classification, VIP overrides, learning, SLA tracking and a follow-up queue."""

__version__ = "0.1.0"
