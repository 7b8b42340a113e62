"""Unit tests for the ServiceNow table API client.

Requests are served by httpx.MockTransport.

Run with: pytest tests/test_servicenow_client.py -v
"""

from datetime import datetime, timedelta, timezone

import httpx
import pytest

from incident_hub.core import ConfigurationException, SourceUnavailableException
from incident_hub.tickets.infrastructure import ServiceNowClient


def make_client(handler, **overrides) -> ServiceNowClient:
    values = dict(
        base_url="https://dev.service-now.test/",
        username="integration",
        password="secret",
        fields="number,short_description",
        name="ServiceNow",
        transport=httpx.MockTransport(handler),
    )
    values.update(overrides)
    return ServiceNowClient(**values)


class TestFetchPage:
    """Test request building and response handling."""

    @pytest.mark.asyncio
    async def test_request_parameters(self):
        seen = {}

        def handler(request: httpx.Request) -> httpx.Response:
            seen["url"] = f"{request.url.scheme}://{request.url.host}{request.url.path}"
            seen["params"] = dict(request.url.params)
            seen["auth"] = request.headers.get("Authorization")
            return httpx.Response(200, json={"result": [{"number": "INC1"}]})

        client = make_client(handler)
        records = await client.fetch_page(100, 50, "active=true")
        await client.close()

        assert records == [{"number": "INC1"}]
        assert seen["url"] == "https://dev.service-now.test/api/now/table/incident"
        assert seen["params"]["sysparm_offset"] == "100"
        assert seen["params"]["sysparm_limit"] == "50"
        assert seen["params"]["sysparm_display_value"] == "true"
        assert seen["params"]["sysparm_query"] == "active=true"
        assert seen["params"]["sysparm_fields"] == "number,short_description"
        assert seen["auth"].startswith("Basic ")

    @pytest.mark.asyncio
    async def test_no_query_param_without_filter(self):
        seen = {}

        def handler(request):
            seen["params"] = dict(request.url.params)
            return httpx.Response(200, json={"result": []})

        assert await make_client(handler).fetch_page(0, 10) == []
        assert "sysparm_query" not in seen["params"]

    @pytest.mark.asyncio
    @pytest.mark.parametrize("status_code", [401, 500, 503])
    async def test_error_status(self, status_code):
        client = make_client(lambda request: httpx.Response(status_code, json={"error": "x"}))

        with pytest.raises(SourceUnavailableException) as exc_info:
            await client.fetch_page(0, 10)
        assert str(status_code) in exc_info.value.message

    @pytest.mark.asyncio
    async def test_transport_error(self):
        def handler(request):
            raise httpx.ConnectError("connection refused", request=request)

        with pytest.raises(SourceUnavailableException):
            await make_client(handler).fetch_page(0, 10)

    @pytest.mark.asyncio
    async def test_unexpected_body(self):
        client = make_client(lambda request: httpx.Response(200, json={"records": []}))

        with pytest.raises(SourceUnavailableException):
            await client.fetch_page(0, 10)

    @pytest.mark.asyncio
    async def test_missing_configuration(self):
        client = make_client(lambda request: httpx.Response(200, json={"result": []}), base_url="")

        with pytest.raises(ConfigurationException):
            await client.fetch_page(0, 10)


class TestChangedSinceQuery:
    """Test the encoded query used for polling."""

    def test_formats_in_utc(self):
        since = datetime(2024, 6, 1, 14, 30, 5, tzinfo=timezone(timedelta(hours=2)))
        query = make_client(lambda request: None).changed_since_query(since)
        assert query == "sys_created_on>=2024-06-01 12:30:05^ORsys_updated_on>=2024-06-01 12:30:05"
