from inbox_triage.features.followup.business_calendar import BusinessCalendar
from inbox_triage.features.followup.queue_manager import FollowUpQueue
from inbox_triage.features.followup.sla_tracker import SLATracker
from inbox_triage.features.followup.snooze_engine import SnoozeEngine

__all__ = ["BusinessCalendar", "FollowUpQueue", "SLATracker", "SnoozeEngine"]
