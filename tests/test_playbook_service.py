"""Unit tests for playbook authoring and search.

Run with: pytest tests/test_playbook_service.py -v
"""

import pytest

from incident_hub.core import ConflictException, IndexWriteException, ResourceNotFoundException
from incident_hub.playbooks.application import (
    PlaybookCreateDTO,
    PlaybookService,
    PlaybookTriggerDTO,
    PlaybookUpdateDTO,
)


def create_dto(**overrides) -> PlaybookCreateDTO:
    values = dict(
        playbook_id="PB-DISK",
        title="Disk full on database host",
        description="Free space on the data volume",
        priority="High",
        tags=["Storage", "Database"],
        triggers=[PlaybookTriggerDTO(title="Check usage", action="df -h", expected_outcome="Usage listed")],
    )
    values.update(overrides)
    return PlaybookCreateDTO(**values)


@pytest.fixture
def service(playbook_store, playbook_vectorization) -> PlaybookService:
    return PlaybookService(playbook_store.scope, playbook_vectorization)


class TestWrites:
    """Test commit-then-vectorize writes."""

    @pytest.mark.asyncio
    async def test_create_vectorizes(self, service, vector_index):
        result = await service.create(create_dto())

        assert result.vector_synced
        assert result.playbook.triggers[0].trigger_id == "step-1"
        payload = vector_index.points["playbooks"][result.playbook.id]["payload"]
        assert payload["playbook_id"] == "PB-DISK"
        assert payload["is_active"] is True
        assert payload["source"] == "playbook"

    @pytest.mark.asyncio
    async def test_create_generates_business_id(self, service):
        result = await service.create(create_dto(playbook_id=None))
        assert result.playbook.playbook_id.startswith("PB-")

    @pytest.mark.asyncio
    async def test_duplicate_business_id(self, service):
        await service.create(create_dto())
        with pytest.raises(ConflictException):
            await service.create(create_dto())

    @pytest.mark.asyncio
    async def test_vector_failure_keeps_committed_playbook(self, service, vector_index, playbook_store):
        vector_index.failures["upsert"] = IndexWriteException("timeout")

        result = await service.create(create_dto())

        assert not result.vector_synced
        assert result.playbook.id in playbook_store.playbooks

    @pytest.mark.asyncio
    async def test_update_revectorizes_changed_content(self, service, vector_index):
        created = await service.create(create_dto())
        upserts = vector_index.calls["upsert"]

        result = await service.update(created.playbook.id, PlaybookUpdateDTO(title="Disk full on replica"))

        assert result.vector_synced
        assert vector_index.calls["upsert"] == upserts + 1
        assert vector_index.points["playbooks"][created.playbook.id]["payload"]["title"] == "Disk full on replica"

    @pytest.mark.asyncio
    async def test_update_of_usage_only_skips_vectorization(self, service, vector_index):
        created = await service.create(create_dto())
        upserts = vector_index.calls["upsert"]

        result = await service.update(created.playbook.id, PlaybookUpdateDTO(usage=5))

        assert vector_index.calls["upsert"] == upserts
        assert result.vector_synced is None

    @pytest.mark.asyncio
    async def test_update_of_inactive_playbook_attempts_no_vector_write(self, service, vector_index):
        created = await service.create(create_dto())
        await service.deactivate(created.playbook.id)
        upserts = vector_index.calls["upsert"]

        result = await service.update(created.playbook.id, PlaybookUpdateDTO(title="Retired runbook"))

        assert vector_index.calls["upsert"] == upserts
        assert result.vector_synced is None
        assert result.playbook.title == "Retired runbook"

    @pytest.mark.asyncio
    async def test_update_unknown(self, service):
        with pytest.raises(ResourceNotFoundException):
            await service.update("missing", PlaybookUpdateDTO(title="x"))

    @pytest.mark.asyncio
    async def test_deactivate_removes_twin(self, service, vector_index, playbook_store):
        created = await service.create(create_dto())

        result = await service.deactivate(created.playbook.id)

        assert result.vector_synced
        assert not playbook_store.playbooks[created.playbook.id].is_active
        assert vector_index.points["playbooks"] == {}


class TestSearch:
    """Test lexical, vector and hybrid search."""

    @pytest.mark.asyncio
    async def test_vector_search_filters_active_and_priority(self, service, vector_index):
        await service.create(create_dto())

        await service.vector_search("disk", min_score=-1.0, priority="High", tags=["Storage"])

        assert vector_index.last_filter.equals == {"is_active": True, "priority": "High"}
        assert vector_index.last_filter.contains_any == {"tags": ["Storage"]}

    @pytest.mark.asyncio
    async def test_hybrid_search_fuses_both_paths(self, service, vector_index):
        disk = await service.create(create_dto())
        vpn = await service.create(create_dto(playbook_id="PB-VPN", title="VPN tunnel down", tags=["Network"]))
        vector_index.fixed_scores = {disk.playbook.id: 0.9, vpn.playbook.id: 0.8}

        result = await service.hybrid_search("disk", vector_weight=0.7, text_weight=0.3, max_results=10)

        assert not result.degraded
        assert [h.record_id for h in result.hits] == [disk.playbook.id, vpn.playbook.id]
        assert result.hits[0].search_type == "hybrid"
        assert result.hits[0].score == pytest.approx(0.93)
        assert result.hits[1].search_type == "vector"

    @pytest.mark.asyncio
    async def test_hybrid_filters_apply_to_text_path(self, service, vector_index):
        await service.create(create_dto())
        vector_index.failures["search"] = IndexWriteException("down")

        result = await service.hybrid_search("disk", priority="Low")

        assert result.degraded
        assert result.hits == []

    @pytest.mark.asyncio
    async def test_reindex(self, service, vector_index):
        await service.create(create_dto())
        await service.create(create_dto(playbook_id="PB-2"))
        vector_index.points["playbooks"].clear()

        tally = await service.reindex()

        assert tally.vectorized == 2
        assert len(vector_index.points["playbooks"]) == 2
