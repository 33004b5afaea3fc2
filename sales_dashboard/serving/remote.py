"""
Remote Compute Client

Asks a remote compute endpoint to fetch the raw sources, run the
aggregation and return the resulting ``CachedResult``.

The endpoint answers with an envelope::

    {"success": true, "data": {...CachedResult...}, "message": "..."}

A bare CachedResult payload is accepted as well.
"""

from typing import Optional

import httpx
import structlog
from pydantic import ValidationError

from sales_dashboard.transformation.models import CachedResult

logger = structlog.get_logger(__name__)


class RemoteComputeError(RuntimeError):
    """The remote compute endpoint failed or returned an unusable payload"""


class RemoteComputeClient:
    """
    HTTP client for the compute-now endpoint.

    Example:
        client = RemoteComputeClient("https://dashboard.example.com/api/v1/cache/update")
        result = await client.compute()
    """

    def __init__(
        self,
        url: str,
        timeout: float = 60.0,
        client: Optional[httpx.AsyncClient] = None,
    ):
        self.url = url
        self.timeout = timeout
        self._client = client

    async def _post(self) -> httpx.Response:
        if self._client is not None:
            return await self._client.post(self.url, timeout=self.timeout)
        async with httpx.AsyncClient(follow_redirects=True) as client:
            return await client.post(self.url, timeout=self.timeout)

    @staticmethod
    def parse_payload(body: dict) -> CachedResult:
        """
        Extract the CachedResult from a response body.

        Raises:
            RemoteComputeError: On an unsuccessful or malformed payload
        """
        if not isinstance(body, dict):
            raise RemoteComputeError("Remote compute returned a non-object payload")

        if "success" in body:
            if not body.get("success"):
                raise RemoteComputeError(body.get("error") or "Remote compute reported failure")
            body = body.get("data")

        try:
            return CachedResult.model_validate(body)
        except ValidationError as e:
            raise RemoteComputeError(f"Remote compute payload invalid: {e.error_count()} errors") from e

    async def compute(self) -> CachedResult:
        """
        Request a fresh computation.

        Raises:
            RemoteComputeError: On transport errors, non-2xx responses or bad payloads
        """
        try:
            response = await self._post()
        except httpx.HTTPError as e:
            raise RemoteComputeError(f"Remote compute unreachable: {e}") from e

        if response.is_error:
            raise RemoteComputeError(f"Remote compute returned HTTP {response.status_code}")

        try:
            body = response.json()
        except ValueError as e:
            raise RemoteComputeError("Remote compute returned invalid JSON") from e

        result = self.parse_payload(body)
        logger.info(
            "Remote compute succeeded",
            url=self.url,
            customers=len(result.performances),
            message=body.get("message"),
        )
        return result
