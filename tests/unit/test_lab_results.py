"""
Unit Tests for the Lab Results Client

Uses httpx.MockTransport; no network access.
"""
import json

import httpx
import pytest

from medsafety.services import LabResultsClient, lab_date_to_iso
from medsafety.utils import InvalidInputError, LabResultsError


def client_for(handler) -> LabResultsClient:
    return LabResultsClient(
        base_url="https://labs.test/",
        timeout_seconds=5,
        transport=httpx.MockTransport(handler),
    )


class TestLabDate:

    def test_converts_to_iso(self):
        assert lab_date_to_iso("03/05/2024") == "2024-03-05T00:00:00.000Z"

    @pytest.mark.parametrize("value", ["2024-03-05", "13/01/2024", "", None])
    def test_rejects_other_formats(self, value):
        with pytest.raises(InvalidInputError):
            lab_date_to_iso(value)


@pytest.mark.asyncio
class TestFetchLabResults:

    async def test_request_shape(self):
        seen = {}

        def handler(request: httpx.Request) -> httpx.Response:
            seen["method"] = request.method
            seen["url"] = str(request.url)
            seen["auth"] = request.headers.get("Authorization")
            seen["body"] = json.loads(request.content)
            return httpx.Response(200, json={"OrganData": '{"kidney": {"finalScore": 8}}'})

        data = await client_for(handler).fetch_lab_results(
            "org-1", "pat-9", {"creatinine": 2.1}, "01/15/2024", "tok123"
        )

        assert data["OrganData"] == '{"kidney": {"finalScore": 8}}'
        assert seen["method"] == "POST"
        assert seen["url"] == "https://labs.test/organizations/org-1/patients/pat-9/lab-results"
        assert seen["auth"] == "Bearer tok123"
        assert seen["body"] == {
            "biomarkers": {"creatinine": 2.1},
            "diagnosticResultDate": "2024-01-15T00:00:00.000Z",
        }

    async def test_error_status(self):
        def handler(request):
            return httpx.Response(403, text="forbidden")

        with pytest.raises(LabResultsError) as exc_info:
            await client_for(handler).fetch_lab_results("o", "p", {}, "01/15/2024", "t")
        assert exc_info.value.status_code == 403

    async def test_transport_failure(self):
        def handler(request):
            raise httpx.ConnectError("connection refused", request=request)

        with pytest.raises(LabResultsError):
            await client_for(handler).fetch_lab_results("o", "p", {}, "01/15/2024", "t")

    async def test_non_json_body(self):
        def handler(request):
            return httpx.Response(200, text="<html>")

        with pytest.raises(LabResultsError):
            await client_for(handler).fetch_lab_results("o", "p", {}, "01/15/2024", "t")

    async def test_non_object_body(self):
        def handler(request):
            return httpx.Response(200, json=[1, 2])

        with pytest.raises(LabResultsError):
            await client_for(handler).fetch_lab_results("o", "p", {}, "01/15/2024", "t")

    async def test_bad_date_rejected_before_request(self):
        calls = []

        def handler(request):
            calls.append(request)
            return httpx.Response(200, json={})

        with pytest.raises(InvalidInputError):
            await client_for(handler).fetch_lab_results("o", "p", {}, "2024-01-15", "t")
        assert calls == []
