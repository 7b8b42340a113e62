"""Unit tests for the ticket polling scheduler.

Run with: pytest tests/test_polling_scheduler.py -v
"""

import pytest

from incident_hub.tickets.application import TicketSyncService
from incident_hub.tickets.infrastructure import PollingScheduler

from tests.conftest import FakeTicketSource, servicenow_record


@pytest.fixture
def sync_service(ticket_store, ticket_vectorization) -> TicketSyncService:
    return TicketSyncService(
        ticket_store.ticket_scope,
        ticket_store.state_scope,
        FakeTicketSource([servicenow_record("INC1")]),
        ticket_vectorization,
        page_delay_seconds=0,
    )


class TestPollingScheduler:
    """Test job binding and lifecycle."""

    @pytest.mark.asyncio
    async def test_start_binds_scheduled_poll(self, sync_service):
        scheduler = PollingScheduler(sync_service, interval_seconds=300)

        await scheduler.start()
        try:
            job = scheduler._scheduler.get_job(PollingScheduler.JOB_ID)
            status = scheduler.status()
        finally:
            await scheduler.stop()

        assert job.func == sync_service.scheduled_poll
        assert job.trigger.interval.total_seconds() == 300
        assert status["running"] is True
        assert status["source"] == "ServiceNow"
        assert status["next_run_at"] is not None

    @pytest.mark.asyncio
    async def test_job_runs_a_poll(self, sync_service, ticket_store):
        scheduler = PollingScheduler(sync_service, interval_seconds=300)

        await scheduler.start()
        try:
            await scheduler._scheduler.get_job(PollingScheduler.JOB_ID).func()
        finally:
            await scheduler.stop()

        assert len(ticket_store.tickets) == 1
        assert ticket_store.states["ServiceNow"].last_polled_at is not None

    @pytest.mark.asyncio
    async def test_start_twice_keeps_one_job(self, sync_service):
        scheduler = PollingScheduler(sync_service, interval_seconds=300)

        await scheduler.start()
        first = scheduler._scheduler
        await scheduler.start()
        try:
            assert scheduler._scheduler is first
            assert len(first.get_jobs()) == 1
        finally:
            await scheduler.stop()

    @pytest.mark.asyncio
    async def test_stop_reports_stopped(self, sync_service):
        scheduler = PollingScheduler(sync_service, interval_seconds=300)

        await scheduler.start()
        await scheduler.stop()

        assert not scheduler.is_running
        assert scheduler.status() == {
            "source": "ServiceNow",
            "running": False,
            "interval_seconds": 300,
            "next_run_at": None,
        }
