"""
Lab Results Provider Client

Posts the patient's biomarkers to the external lab-results service and
returns its scoring, including the per-organ ``OrganData`` the signal
classifier reads.
"""
from datetime import datetime, timezone
from typing import Any, Dict, Optional

import httpx

from medsafety.config import settings
from medsafety.utils import get_logger, InvalidInputError, LabResultsError

logger = get_logger(__name__)


def lab_date_to_iso(lab_date: str) -> str:
    """
    Convert ``MM/DD/YYYY`` to an ISO-8601 UTC timestamp (``2024-03-05T00:00:00.000Z``).

    Raises:
        InvalidInputError: the date is not in MM/DD/YYYY form
    """
    try:
        parsed = datetime.strptime(lab_date.strip(), "%m/%d/%Y").replace(tzinfo=timezone.utc)
    except (AttributeError, ValueError) as e:
        raise InvalidInputError(
            f"labDate must be MM/DD/YYYY, got {lab_date!r}",
            field="labDate",
        ) from e
    return parsed.strftime("%Y-%m-%dT%H:%M:%S.000Z")


class LabResultsClient:
    """Async client for the lab-results provider."""

    def __init__(
        self,
        base_url: Optional[str] = None,
        timeout_seconds: Optional[float] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.base_url = (base_url or settings.lab_results_base_url).rstrip("/")
        self.timeout_seconds = timeout_seconds or settings.lab_results_timeout_seconds
        self._transport = transport

    async def fetch_lab_results(
        self,
        organization_id: str,
        patient_id: str,
        biomarkers: Dict[str, Any],
        lab_date: str,
        bearer_token: str,
    ) -> Dict[str, Any]:
        """
        Raises:
            InvalidInputError: lab_date is malformed
            LabResultsError: transport failure, non-2xx status, or non-JSON body
        """
        url = f"{self.base_url}/organizations/{organization_id}/patients/{patient_id}/lab-results"
        payload = {
            "biomarkers": biomarkers,
            "diagnosticResultDate": lab_date_to_iso(lab_date),
        }
        logger.info(f"Calling lab results API for patient {patient_id} (organization {organization_id})")

        try:
            async with httpx.AsyncClient(transport=self._transport, timeout=self.timeout_seconds) as client:
                response = await client.post(
                    url,
                    json=payload,
                    headers={"Authorization": f"Bearer {bearer_token}"},
                )
                response.raise_for_status()
                data = response.json()
        except httpx.HTTPStatusError as e:
            logger.error(f"Lab results API returned {e.response.status_code}: {e.response.text[:500]}")
            raise LabResultsError(
                f"Lab results API returned {e.response.status_code}",
                status_code=e.response.status_code,
                details={"body": e.response.text[:500]},
            ) from e
        except httpx.HTTPError as e:
            logger.error(f"Lab results API request failed: {e}")
            raise LabResultsError(f"Lab results API request failed: {e}") from e
        except ValueError as e:
            raise LabResultsError("Lab results API returned a non-JSON body") from e

        if not isinstance(data, dict):
            raise LabResultsError("Lab results API returned an unexpected payload")

        logger.info("Lab results received")
        return data
