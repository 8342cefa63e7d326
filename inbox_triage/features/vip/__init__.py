from inbox_triage.features.vip.manager import VIPManager

__all__ = ["VIPManager"]
