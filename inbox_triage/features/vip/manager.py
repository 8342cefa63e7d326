"""
VIP manager - tiered list of important senders and domains.

Lookups check the exact address first, then shell-style domain globs
(`*@acme.com`, `*@*.acme.com`). The VIP list is cached on the instance and
re-read from the store after VIP_RELOAD_SECONDS or any write.
"""

import re
from collections.abc import Callable, Iterable
from datetime import UTC, datetime, timedelta
from fnmatch import fnmatchcase
from typing import Any

from inbox_triage.config import Settings
from inbox_triage.core.errors import NotFoundError, UpstreamUnavailable, ValidationError
from inbox_triage.infrastructure.observability.logging import get_logger
from inbox_triage.models.domain.actions import MarkImportantAction, RuleAction, StarAction
from inbox_triage.models.domain.email import is_automated_address, normalize_email
from inbox_triage.models.domain.enums import Priority
from inbox_triage.models.domain.vip import CorrespondentStats, VIPContact, VIPSuggestion
from inbox_triage.repositories.base import VipRepository

logger = get_logger(__name__)

VALID_TIERS = (1, 2, 3)
TIER_IMPORTANCE = {1: 100.0, 2: 90.0, 3: 80.0}
VIP_CONFIDENCE = 0.95
MAX_SUGGESTIONS = 5

ADDRESS_PATTERN = re.compile(r"^[^@\s]+@[^@\s]+$")
EXECUTIVE_PATTERN = re.compile(r"\b(ceo|cto|cfo|coo|president|vp|founder|director)\b")


class VIPManager:
    SHARED_INBOX_PATTERNS = {
        "support",
        "help",
        "info",
        "team",
        "sales",
        "billing",
        "admin",
        "newsletter",
    }

    def __init__(
        self,
        repository: VipRepository,
        settings: Settings,
        clock: Callable[[], datetime] | None = None,
    ):
        self.repository = repository
        self.settings = settings
        self.reload_interval = timedelta(seconds=settings.VIP_RELOAD_SECONDS)
        self._clock = clock or (lambda: datetime.now(UTC))
        self._exact: dict[str, VIPContact] | None = None
        self._globs: list[VIPContact] = []
        self._loaded_at: datetime | None = None

    # -----------------------------------------------------------------
    # Lookup
    # -----------------------------------------------------------------

    async def _load(self) -> None:
        now = self._clock()
        if (
            self._exact is not None
            and self._loaded_at is not None
            and now - self._loaded_at < self.reload_interval
        ):
            return

        try:
            vips = await self.repository.list()
        except UpstreamUnavailable:
            if self._exact is not None:
                logger.warning("VIP store unavailable, keeping cached VIP list")
                return
            raise

        self._exact = {}
        self._globs = []
        for vip in vips:
            if vip.is_glob:
                self._globs.append(vip)
            else:
                self._exact[vip.pattern] = vip
        self._loaded_at = now
        logger.debug("VIP list loaded", exact=len(self._exact), globs=len(self._globs))

    def _invalidate(self) -> None:
        self._exact = None
        self._globs = []
        self._loaded_at = None

    async def is_vip(self, email: str) -> VIPContact | None:
        """Exact address first, then the best (lowest tier, longest) glob."""
        address = normalize_email(email)
        if not address:
            return None

        await self._load()

        exact = self._exact.get(address)
        if exact is not None:
            return exact

        candidates = [vip for vip in self._globs if fnmatchcase(address, vip.pattern)]
        if not candidates:
            return None
        return min(candidates, key=lambda vip: (vip.tier, -len(vip.pattern)))

    def priority_floor(self, vip: VIPContact) -> Priority:
        return self.settings.vip_priority_floor(vip.tier)

    @staticmethod
    def labels_for(vip: VIPContact) -> list[str]:
        return ["PA-VIP", f"PA-Tier{vip.tier}"]

    @staticmethod
    def importance_for(vip: VIPContact) -> float:
        return TIER_IMPORTANCE.get(vip.tier, 80.0)

    @staticmethod
    def actions_for(vip: VIPContact) -> list[RuleAction]:
        actions: list[RuleAction] = [MarkImportantAction()]
        if vip.tier <= 2:
            actions.append(StarAction())
        return actions

    # -----------------------------------------------------------------
    # Mutation
    # -----------------------------------------------------------------

    @staticmethod
    def _validate(vip: VIPContact) -> VIPContact:
        pattern = normalize_email(vip.pattern)
        if not ADDRESS_PATTERN.match(pattern):
            raise ValidationError(f"Invalid VIP email or pattern: {vip.pattern}", field="pattern")
        if vip.tier not in VALID_TIERS:
            raise ValidationError("VIP tier must be 1, 2 or 3", field="tier")
        if vip.sla_hours is not None and vip.sla_hours <= 0:
            raise ValidationError("sla_hours must be positive", field="sla_hours")
        vip.pattern = pattern
        return vip

    async def add_vip(self, vip: VIPContact) -> VIPContact:
        vip = self._validate(vip)
        if await self.repository.get(vip.pattern) is not None:
            raise ValidationError(f"VIP already exists: {vip.pattern}", field="pattern")

        await self.repository.upsert(vip)
        self._invalidate()
        logger.info("VIP added", pattern=vip.pattern, tier=vip.tier)
        return vip

    async def update_vip(self, pattern: str, **changes: Any) -> VIPContact:
        key = normalize_email(pattern)
        existing = await self.repository.get(key)
        if existing is None:
            raise NotFoundError("vip", key)

        for name in ("display_name", "tier", "auto_draft", "sla_hours"):
            if name in changes:
                setattr(existing, name, changes[name])

        vip = self._validate(existing)
        await self.repository.upsert(vip)
        self._invalidate()
        logger.info("VIP updated", pattern=key, fields=sorted(changes))
        return vip

    async def remove_vip(self, pattern: str) -> None:
        key = normalize_email(pattern)
        if not await self.repository.delete(key):
            raise NotFoundError("vip", key)
        self._invalidate()
        logger.info("VIP removed", pattern=key)

    async def list_vips(self) -> list[VIPContact]:
        vips = await self.repository.list()
        return sorted(vips, key=lambda v: (v.tier, v.pattern))

    # -----------------------------------------------------------------
    # Reporting and suggestions
    # -----------------------------------------------------------------

    async def get_vip_statistics(self) -> dict[str, Any]:
        vips = await self.repository.list()
        with_sla = [v.sla_hours for v in vips if v.sla_hours is not None]
        return {
            "total_vips": len(vips),
            "by_tier": {tier: sum(1 for v in vips if v.tier == tier) for tier in VALID_TIERS},
            "with_auto_draft": sum(1 for v in vips if v.auto_draft),
            "average_sla_hours": round(sum(with_sla) / len(with_sla), 1) if with_sla else None,
        }

    def _is_excluded_sender(self, address: str) -> bool:
        """Role inboxes and machine senders are never suggested."""
        if is_automated_address(address):
            return True
        local = address.split("@", 1)[0].split("+", 1)[0]
        return any(local == p or local.startswith(f"{p}.") for p in self.SHARED_INBOX_PATTERNS)

    async def suggest_vips(self, correspondents: Iterable[CorrespondentStats]) -> list[VIPSuggestion]:
        """
        Rank frequent or senior correspondents who are not already VIPs.

        Non-binding: nothing is written. Executives suggest tier 1, senders
        with several important or replied threads tier 2, plain frequent
        senders tier 3.
        """
        suggestions: list[VIPSuggestion] = []

        for stats in correspondents:
            address = normalize_email(stats.email)
            if not ADDRESS_PATTERN.match(address) or self._is_excluded_sender(address):
                continue
            if await self.is_vip(address) is not None:
                continue

            engaged = stats.important_count + stats.replied_count
            title_source = f"{stats.display_name or ''} {address.split('@', 1)[0]}".lower()

            if EXECUTIVE_PATTERN.search(title_source):
                tier, reason = 1, "Sender appears to be an executive"
            elif engaged >= 3:
                tier, reason = 2, f"{engaged} important or replied messages"
            elif stats.message_count >= 10:
                tier, reason = 3, f"Frequent correspondent ({stats.message_count} messages)"
            else:
                continue

            score = stats.message_count + 2 * engaged + (50 if tier == 1 else 0)
            suggestions.append(
                VIPSuggestion(
                    email=address,
                    display_name=stats.display_name,
                    suggested_tier=tier,
                    reason=reason,
                    score=float(score),
                    suggested_sla_hours=self.settings.vip_default_sla_hours(tier),
                )
            )

        suggestions.sort(key=lambda s: (s.suggested_tier, -s.score, s.email))
        return suggestions[:MAX_SUGGESTIONS]
