"""
Audit trail for follow-up queue mutations.
"""

from inbox_triage.infrastructure.audit.queue_history import QueueHistoryRecorder

__all__ = ["QueueHistoryRecorder"]
