# core/workflow_transport.py
"""
Handles all direct HTTP interactions with the external story workflow
service. One shared async client is reused for every request so that
concurrent orchestration runs share the connection pool; nothing else is
kept between calls.

Licensed under the Apache License, Version 2.0 (the "License");
you may not use this file except in compliance with the License.
You may obtain a copy of the License at

    http://www.apache.org/licenses/LICENSE-2.0

Unless required by applicable law or agreed to in writing, software
distributed under the License is distributed on an "AS IS" BASIS,
WITHOUT WARRANTIES OR CONDITIONS OF ANY KIND, either express or implied.
See the License for the specific language governing permissions and
limitations under the License.
"""

# Standard library imports
from dataclasses import dataclass, field

import httpx

# Third-party imports
import structlog

# Local imports
from config import settings

logger = structlog.get_logger(__name__)

JSON_HEADERS = {"Content-Type": "application/json", "Accept": "application/json"}


class WorkflowTransportError(Exception):
    """Base class for failures talking to the workflow endpoint."""


class TransportError(WorkflowTransportError):
    """The request could not be sent or no response arrived."""


class ResponseReadError(WorkflowTransportError):
    """A response started but its body could not be read."""

    def __init__(self, message: str, status_code: int | None = None):
        super().__init__(message)
        self.status_code = status_code


@dataclass
class TransportResponse:
    status_code: int
    headers: dict[str, str] = field(default_factory=dict)
    body: bytes = b""


class WorkflowTransport:
    """Thin async HTTP client for the workflow endpoint."""

    def __init__(
        self,
        timeout: float = settings.HTTPX_TIMEOUT,
        client: httpx.AsyncClient | None = None,
    ):
        # Use a single async client for all requests to reuse connections
        self._client = client or httpx.AsyncClient(timeout=timeout)
        self.request_count = 0
        logger.info(f"WorkflowTransport initialized with a timeout of {timeout}s.")

    async def aclose(self) -> None:
        """Close the underlying HTTP client."""
        await self._client.aclose()

    async def post(
        self, url: str, body: bytes, headers: dict[str, str] | None = None
    ) -> TransportResponse:
        """POST ``body`` to ``url`` and return the fully read response.

        Raises ``TransportError`` when the exchange fails before a response
        arrives and ``ResponseReadError`` when reading the body fails.
        """
        request_headers = dict(JSON_HEADERS)
        if headers:
            request_headers.update(headers)

        self.request_count += 1
        try:
            request = self._client.build_request(
                "POST", url, content=body, headers=request_headers
            )
            response = await self._client.send(request, stream=True)
        except httpx.TimeoutException as e_timeout:
            raise TransportError(f"Request to {url} timed out: {e_timeout}") from e_timeout
        except (httpx.RequestError, httpx.InvalidURL) as e_req:
            raise TransportError(
                f"Request to {url} failed: {type(e_req).__name__}: {e_req}"
            ) from e_req

        try:
            raw = await response.aread()
        except httpx.HTTPError as e_read:
            raise ResponseReadError(
                f"Reading response from {url} failed: {type(e_read).__name__}: {e_read}",
                status_code=response.status_code,
            ) from e_read
        finally:
            await response.aclose()

        return TransportResponse(
            status_code=response.status_code,
            headers=dict(response.headers),
            body=raw,
        )

    async def ping(
        self, url: str, timeout: float = settings.HEALTH_CHECK_TIMEOUT
    ) -> int | None:
        """Return the status code of a GET to ``url``, or None if unreachable."""
        try:
            response = await self._client.get(url, timeout=timeout)
        except (httpx.HTTPError, httpx.InvalidURL) as exc:
            logger.warning(f"Workflow endpoint {url} unreachable: {exc}")
            return None
        return response.status_code
