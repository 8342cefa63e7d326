from unittest.mock import AsyncMock

import pytest

from inbox_triage.core.errors import NotFoundError, UpstreamUnavailable, ValidationError
from inbox_triage.features.vip import VIPManager
from inbox_triage.models.domain.enums import Priority
from inbox_triage.models.domain.vip import CorrespondentStats, VIPContact


@pytest.mark.asyncio
async def test_exact_lookup_normalizes_address(vip_manager):
    await vip_manager.add_vip(VIPContact(pattern="CEO@Acme.com", tier=1, display_name="Dana"))

    vip = await vip_manager.is_vip("Dana <ceo@ACME.com>")

    assert vip is not None
    assert vip.pattern == "ceo@acme.com"
    assert vip.tier == 1


@pytest.mark.asyncio
async def test_unknown_sender_is_not_vip(vip_manager):
    await vip_manager.add_vip(VIPContact(pattern="ceo@acme.com", tier=1))

    assert await vip_manager.is_vip("someone@else.com") is None
    assert await vip_manager.is_vip("") is None


@pytest.mark.asyncio
async def test_exact_match_beats_domain_glob(vip_manager):
    await vip_manager.add_vip(VIPContact(pattern="*@acme.com", tier=1))
    await vip_manager.add_vip(VIPContact(pattern="intern@acme.com", tier=3))

    assert (await vip_manager.is_vip("intern@acme.com")).tier == 3
    assert (await vip_manager.is_vip("anyone@acme.com")).tier == 1


@pytest.mark.asyncio
async def test_glob_prefers_lowest_tier(vip_manager):
    await vip_manager.add_vip(VIPContact(pattern="*@*.acme.com", tier=2))
    await vip_manager.add_vip(VIPContact(pattern="*@eu.acme.com", tier=3))

    vip = await vip_manager.is_vip("jo@eu.acme.com")

    assert vip.pattern == "*@*.acme.com"
    assert await vip_manager.is_vip("jo@acme.com") is None


@pytest.mark.asyncio
async def test_add_vip_rejects_invalid_input(vip_manager):
    with pytest.raises(ValidationError):
        await vip_manager.add_vip(VIPContact(pattern="not-an-email", tier=1))

    with pytest.raises(ValidationError):
        await vip_manager.add_vip(VIPContact(pattern="a@b.com", tier=4))

    with pytest.raises(ValidationError):
        await vip_manager.add_vip(VIPContact(pattern="a@b.com", tier=2, sla_hours=0))

    await vip_manager.add_vip(VIPContact(pattern="a@b.com", tier=2))
    with pytest.raises(ValidationError):
        await vip_manager.add_vip(VIPContact(pattern="A@B.com", tier=1))


@pytest.mark.asyncio
async def test_update_and_remove(vip_manager):
    await vip_manager.add_vip(VIPContact(pattern="a@b.com", tier=3))

    updated = await vip_manager.update_vip("A@b.com", tier=1, sla_hours=2)
    assert updated.tier == 1
    assert (await vip_manager.is_vip("a@b.com")).sla_hours == 2

    await vip_manager.remove_vip("a@b.com")
    assert await vip_manager.is_vip("a@b.com") is None

    with pytest.raises(NotFoundError):
        await vip_manager.remove_vip("a@b.com")
    with pytest.raises(NotFoundError):
        await vip_manager.update_vip("missing@b.com", tier=1)


@pytest.mark.asyncio
async def test_priority_floor_follows_tier(vip_manager):
    assert vip_manager.priority_floor(VIPContact(pattern="a@b.com", tier=1)) == Priority.CRITICAL
    assert vip_manager.priority_floor(VIPContact(pattern="a@b.com", tier=2)) == Priority.HIGH
    assert vip_manager.priority_floor(VIPContact(pattern="a@b.com", tier=3)) == Priority.MEDIUM


@pytest.mark.asyncio
async def test_store_unavailable_propagates_without_cache(settings):
    repository = AsyncMock()
    repository.list.side_effect = UpstreamUnavailable("db down")
    manager = VIPManager(repository, settings)

    with pytest.raises(UpstreamUnavailable):
        await manager.is_vip("a@b.com")


@pytest.mark.asyncio
async def test_store_unavailable_uses_cached_list(settings, clock):
    repository = AsyncMock()
    repository.list.return_value = [VIPContact(pattern="a@b.com", tier=1)]
    manager = VIPManager(repository, settings, clock)
    await manager.is_vip("a@b.com")

    repository.list.side_effect = UpstreamUnavailable("db down")
    clock.advance(seconds=settings.VIP_RELOAD_SECONDS + 1)

    assert (await manager.is_vip("a@b.com")).tier == 1


@pytest.mark.asyncio
async def test_suggest_vips(vip_manager):
    await vip_manager.add_vip(VIPContact(pattern="known@corp.com", tier=2))

    suggestions = await vip_manager.suggest_vips(
        [
            CorrespondentStats(email="ceo@corp.com", display_name="Pat", message_count=2),
            CorrespondentStats(email="lee@corp.com", message_count=4, important_count=2, replied_count=1),
            CorrespondentStats(email="sam@corp.com", message_count=12),
            CorrespondentStats(email="support@corp.com", message_count=50),
            CorrespondentStats(email="known@corp.com", message_count=40),
            CorrespondentStats(email="quiet@corp.com", message_count=1),
        ]
    )

    assert [(s.email, s.suggested_tier) for s in suggestions] == [
        ("ceo@corp.com", 1),
        ("lee@corp.com", 2),
        ("sam@corp.com", 3),
    ]
    assert [s.suggested_sla_hours for s in suggestions] == [4, 24, 48]


@pytest.mark.asyncio
async def test_machine_and_role_senders_are_not_suggested(vip_manager):
    suggestions = await vip_manager.suggest_vips(
        [
            CorrespondentStats(email="system@corp.com", message_count=30),
            CorrespondentStats(email="bot@corp.com", message_count=30),
            CorrespondentStats(email="noreply+news@corp.com", message_count=30),
            CorrespondentStats(email="do-not-reply@corp.com", message_count=30),
            CorrespondentStats(email="billing.eu@corp.com", message_count=30),
            CorrespondentStats(email="helpdesk@corp.com", message_count=30),
        ]
    )

    assert [s.email for s in suggestions] == ["helpdesk@corp.com"]


@pytest.mark.asyncio
async def test_suggestions_are_capped(vip_manager):
    correspondents = [CorrespondentStats(email=f"user{i}@corp.com", message_count=10 + i) for i in range(8)]

    suggestions = await vip_manager.suggest_vips(correspondents)

    assert len(suggestions) == 5
    assert suggestions[0].email == "user7@corp.com"


@pytest.mark.asyncio
async def test_vip_statistics(vip_manager):
    await vip_manager.add_vip(VIPContact(pattern="a@b.com", tier=1, sla_hours=2, auto_draft=True))
    await vip_manager.add_vip(VIPContact(pattern="c@d.com", tier=1, sla_hours=4))
    await vip_manager.add_vip(VIPContact(pattern="*@e.com", tier=3))

    stats = await vip_manager.get_vip_statistics()

    assert stats == {
        "total_vips": 3,
        "by_tier": {1: 2, 2: 0, 3: 1},
        "with_auto_draft": 1,
        "average_sla_hours": 3.0,
    }
