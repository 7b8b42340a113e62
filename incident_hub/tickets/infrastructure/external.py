"""
Ticket External Service Integrations
====================================

External services for ticket ingestion:
- ServiceNow table API client (paginated incident pulls)
- APScheduler for background polling
"""

from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

import httpx
from apscheduler.schedulers.asyncio import AsyncIOScheduler

from incident_hub.config import settings
from incident_hub.core import ConfigurationException, SourceUnavailableException
from incident_hub.shared.infrastructure.logging import get_logger
from incident_hub.tickets.application import ITicketSource, TicketSyncService

logger = get_logger(__name__)

SERVICENOW_QUERY_TIME_FORMAT = "%Y-%m-%d %H:%M:%S"


class ServiceNowClient(ITicketSource):
    """
    ServiceNow table API client.

    Pages through the incident table with sysparm_offset/sysparm_limit,
    requesting display values. Every transport or HTTP failure surfaces
    as SourceUnavailableException.
    """

    def __init__(
        self,
        base_url: Optional[str] = None,
        username: Optional[str] = None,
        password: Optional[str] = None,
        endpoint: Optional[str] = None,
        fields: Optional[str] = None,
        timeout: Optional[float] = None,
        name: Optional[str] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.base_url = (base_url if base_url is not None else settings.servicenow_url).rstrip("/")
        self.username = username if username is not None else settings.servicenow_username
        self.password = password if password is not None else settings.servicenow_password
        self.endpoint = endpoint or settings.servicenow_api_endpoint
        self.fields = fields if fields is not None else settings.servicenow_fields
        self.timeout = timeout or settings.servicenow_timeout_seconds
        self.name = name or settings.servicenow_source_name
        self._transport = transport
        self._http_client: Optional[httpx.AsyncClient] = None

    def _check_configured(self) -> None:
        missing = [
            key for key, value in (
                ("servicenow_url", self.base_url),
                ("servicenow_username", self.username),
                ("servicenow_password", self.password),
            )
            if not value
        ]
        if missing:
            raise ConfigurationException("ServiceNow is not configured", {"missing": missing})

    async def _get_client(self) -> httpx.AsyncClient:
        """Get or create HTTP client."""
        if self._http_client is None:
            self._check_configured()
            self._http_client = httpx.AsyncClient(
                base_url=self.base_url,
                auth=(self.username, self.password),
                timeout=self.timeout,
                headers={"Accept": "application/json"},
                transport=self._transport,
            )
        return self._http_client

    def changed_since_query(self, since: datetime) -> str:
        if since.tzinfo is not None:
            since = since.astimezone(timezone.utc)
        stamp = since.strftime(SERVICENOW_QUERY_TIME_FORMAT)
        return f"sys_created_on>={stamp}^ORsys_updated_on>={stamp}"

    async def fetch_page(self, offset: int, limit: int, filter_query: str = "") -> List[Dict[str, Any]]:
        client = await self._get_client()
        params: Dict[str, Any] = {
            "sysparm_offset": offset,
            "sysparm_limit": limit,
            "sysparm_display_value": "true",
            "sysparm_exclude_reference_link": "true",
        }
        if self.fields:
            params["sysparm_fields"] = self.fields
        if filter_query:
            params["sysparm_query"] = filter_query

        try:
            response = await client.get(self.endpoint, params=params)
            response.raise_for_status()
            body = response.json()
        except httpx.HTTPStatusError as e:
            logger.error(
                "ServiceNow returned an error status",
                extra={"status_code": e.response.status_code, "offset": offset, "limit": limit}
            )
            raise SourceUnavailableException(
                self.name,
                f"HTTP {e.response.status_code}",
                {"offset": offset, "limit": limit}
            )
        except (httpx.HTTPError, ValueError) as e:
            logger.error(
                "ServiceNow request failed",
                extra={"error": str(e), "error_type": type(e).__name__, "offset": offset}
            )
            raise SourceUnavailableException(self.name, str(e) or type(e).__name__, {"offset": offset, "limit": limit})

        records = body.get("result") if isinstance(body, dict) else None
        if not isinstance(records, list):
            raise SourceUnavailableException(self.name, "Unexpected response shape", {"offset": offset})

        logger.debug("ServiceNow page fetched", extra={"offset": offset, "limit": limit, "count": len(records)})
        return records

    async def close(self) -> None:
        """Close HTTP client."""
        if self._http_client:
            await self._http_client.aclose()
            self._http_client = None


class PollingScheduler:
    """
    Runs ``TicketSyncService.scheduled_poll`` on an APScheduler interval.

    One job per sync service. Overlapping runs are coalesced; a poll that
    is still running when the next one is due is skipped by the service.
    """

    JOB_ID = "ticket_polling"

    def __init__(self, sync_service: TicketSyncService, interval_seconds: Optional[int] = None):
        self._sync_service = sync_service
        self.interval_seconds = interval_seconds or settings.polling_interval_seconds
        self._scheduler: Optional[AsyncIOScheduler] = None

    @property
    def is_running(self) -> bool:
        return self._scheduler is not None and self._scheduler.running

    def next_run_at(self) -> Optional[datetime]:
        if not self.is_running:
            return None
        job = self._scheduler.get_job(self.JOB_ID)
        return job.next_run_time if job else None

    async def start(self, run_immediately: bool = False) -> None:
        """Register the poll job and start the scheduler on the running loop."""
        if self.is_running:
            logger.warning("Polling scheduler already running", extra={"source": self._sync_service.source_name})
            return

        job_options: Dict[str, Any] = {}
        if run_immediately:
            job_options["next_run_time"] = datetime.now(timezone.utc)

        self._scheduler = AsyncIOScheduler(timezone=timezone.utc)
        self._scheduler.add_job(
            self._sync_service.scheduled_poll,
            "interval",
            seconds=self.interval_seconds,
            id=self.JOB_ID,
            name=f"{self._sync_service.source_name} polling",
            misfire_grace_time=60,
            max_instances=1,
            coalesce=True,
            **job_options,
        )
        self._scheduler.start()

        logger.info(
            "Polling scheduler started",
            extra={
                "source": self._sync_service.source_name,
                "interval_seconds": self.interval_seconds,
                "next_run_at": str(self.next_run_at()),
            }
        )

    async def stop(self) -> None:
        if not self.is_running:
            return
        self._scheduler.shutdown(wait=False)
        self._scheduler = None
        logger.info("Polling scheduler stopped", extra={"source": self._sync_service.source_name})

    def status(self) -> Dict[str, Any]:
        next_run = self.next_run_at()
        return {
            "source": self._sync_service.source_name,
            "running": self.is_running,
            "interval_seconds": self.interval_seconds,
            "next_run_at": next_run.isoformat() if next_run else None,
        }
