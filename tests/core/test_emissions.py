from unittest.mock import MagicMock

import pytest

from footprint.core.emissions import GreenHostingClient, bytes_to_co2e, segment_co2e
from footprint.core.errors import ValidationError


class FakeResponse:
    def __init__(self, payload=None, error=None):
        self._payload = payload
        self._error = error

    async def __aenter__(self):
        return self

    async def __aexit__(self, *exc_info):
        return False

    def raise_for_status(self):
        if self._error:
            raise self._error

    async def json(self):
        return self._payload


class TestConversion:
    def test_zero_bytes(self):
        assert bytes_to_co2e(0) == 0

    def test_one_gigabyte(self):
        assert bytes_to_co2e(1_000_000_000) == pytest.approx(148.2)

    def test_green_hosting_lowers_datacenter_share(self):
        assert bytes_to_co2e(1_000_000_000, green=True) == pytest.approx(123.78)

    def test_segments_sum_to_total(self):
        segments = segment_co2e(2_500_000)
        assert set(segments) == {
            "operational_datacenter",
            "operational_network",
            "operational_device",
            "embodied_datacenter",
            "embodied_network",
            "embodied_device",
        }
        assert sum(segments.values()) == pytest.approx(bytes_to_co2e(2_500_000))

    def test_negative_bytes_rejected(self):
        with pytest.raises(ValidationError):
            bytes_to_co2e(-1)


class TestGreenHostingClient:
    @pytest.mark.asyncio
    async def test_green_domain(self):
        session = MagicMock()
        session.get = MagicMock(return_value=FakeResponse({"green": True, "hosted_by": "Green Host"}))
        client = GreenHostingClient(base_url="https://greencheck.test/", session=session)

        result = await client.check("www.example.com/page")

        assert result.green is True
        assert result.hosted_by == "Green Host"
        assert result.url == "https://www.example.com/page"
        assert session.get.call_args.args[0] == "https://greencheck.test/api/v3/greencheck/www.example.com"

    @pytest.mark.asyncio
    async def test_failure_reads_as_not_green(self):
        session = MagicMock()
        session.get = MagicMock(return_value=FakeResponse(error=RuntimeError("503 Service Unavailable")))
        client = GreenHostingClient(session=session)

        result = await client.check("https://example.com/")

        assert result.green is False
        assert result.hosted_by is None
