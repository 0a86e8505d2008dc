"""Remote threat-intelligence lookups over HTTP.

Fingerprints are POSTed as JSON to the hash-check endpoint in chunks of at
most ``chunk_size`` files. Each chunk gets ``retries + 1`` attempts with a
fixed delay between them; only transport failures and 5xx responses are
retried. Any chunk that still fails aborts the whole batch; no partial
result list is ever returned.
"""

import logging
import sys
import time
from typing import List, Optional, Sequence

import httpx
from pydantic import ValidationError

from .. import __version__
from .errors import (
    ThreatIntelError,
    ThreatIntelParseError,
    ThreatIntelRejectedError,
    ThreatIntelServerError,
    ThreatIntelTransportError,
)
from .models import (
    ThreatApiClient,
    ThreatApiFile,
    ThreatApiRequest,
    ThreatApiResponse,
    ThreatApiResult,
)
from .verdict_source import VerdictSource

logger = logging.getLogger(__name__)

DEFAULT_API_BASE_URL = "https://stellarantivirusthreatapiprod.azurewebsites.net"
API_HASH_CHECK_PATH = "/api/av/v1/hash/check"
PRODUCT_NAME = "Stellar Antivirus Desktop"

HTTP_CONNECT_TIMEOUT = 10.0
HTTP_TOTAL_TIMEOUT = 45.0
HTTP_RETRIES = 1
RETRY_DELAY_SECONDS = 0.4
CHUNK_SIZE = 1000
BODY_PREVIEW_BYTES = 200


class ThreatIntelClient(VerdictSource):
    """Batch hash lookups against the remote threat API.

    Args:
        api_base_url: Scheme and host of the lookup service.
        connect_timeout: Seconds allowed to establish a connection.
        total_timeout: Seconds allowed for each read/write/pool phase.
        retries: Extra attempts per chunk after the first failure.
        retry_delay: Fixed pause between attempts, in seconds.
        chunk_size: Maximum files per request.
        http_client: Optional shared ``httpx.Client``. When None a client is
            created for each batch.
    """

    def __init__(
        self,
        api_base_url: str = DEFAULT_API_BASE_URL,
        connect_timeout: float = HTTP_CONNECT_TIMEOUT,
        total_timeout: float = HTTP_TOTAL_TIMEOUT,
        retries: int = HTTP_RETRIES,
        retry_delay: float = RETRY_DELAY_SECONDS,
        chunk_size: int = CHUNK_SIZE,
        http_client: Optional[httpx.Client] = None,
    ):
        super().__init__()
        self.api_base_url = api_base_url.rstrip("/")
        self.connect_timeout = connect_timeout
        self.total_timeout = total_timeout
        self.retries = max(0, retries)
        self.retry_delay = retry_delay
        self.chunk_size = max(1, chunk_size)
        self._http_client = http_client
        self.last_db_version: Optional[int] = None

    @property
    def source_name(self) -> str:
        return "remote"

    @property
    def url(self) -> str:
        return f"{self.api_base_url}{API_HASH_CHECK_PATH}"

    def _build_client_payload(self) -> ThreatApiClient:
        return ThreatApiClient(
            product=PRODUCT_NAME,
            platform=sys.platform,
            version=__version__,
            threat_db_version=self.last_db_version,
        )

    def _new_http_client(self) -> httpx.Client:
        timeout = httpx.Timeout(self.total_timeout, connect=self.connect_timeout)
        return httpx.Client(timeout=timeout)

    def batch_lookup(self, files: Sequence[ThreatApiFile]) -> List[ThreatApiResult]:
        if not files:
            return []

        files = list(files)
        chunk_count = (len(files) + self.chunk_size - 1) // self.chunk_size
        logger.info(f"POST {self.url} ({len(files)} files in {chunk_count} chunks)")

        if self._http_client is not None:
            return self._lookup_chunks(self._http_client, files, chunk_count)
        with self._new_http_client() as client:
            return self._lookup_chunks(client, files, chunk_count)

    def _lookup_chunks(
        self,
        client: httpx.Client,
        files: List[ThreatApiFile],
        chunk_count: int,
    ) -> List[ThreatApiResult]:
        all_results: List[ThreatApiResult] = []
        for index in range(chunk_count):
            chunk = files[index * self.chunk_size:(index + 1) * self.chunk_size]
            all_results.extend(self._lookup_chunk(client, chunk, index + 1, chunk_count))
        return all_results

    def _lookup_chunk(
        self,
        client: httpx.Client,
        chunk: List[ThreatApiFile],
        chunk_number: int,
        chunk_count: int,
    ) -> List[ThreatApiResult]:
        attempts = self.retries + 1
        for attempt in range(1, attempts + 1):
            logger.debug(
                f"chunk {chunk_number}/{chunk_count} attempt {attempt}/{attempts} "
                f"({len(chunk)} items)"
            )
            try:
                return self._post(client, chunk, chunk_number)
            except ThreatIntelError as e:
                if e.retryable and attempt < attempts:
                    logger.warning(
                        f"chunk {chunk_number} attempt {attempt} failed: {e}; retrying"
                    )
                    time.sleep(self.retry_delay)
                    continue
                logger.error(f"chunk {chunk_number}/{chunk_count} failed: {e}")
                raise
        # Unreachable: the loop either returns or raises.
        raise ThreatIntelError("no lookup attempts were made")

    def _post(
        self,
        client: httpx.Client,
        chunk: List[ThreatApiFile],
        chunk_number: int,
    ) -> List[ThreatApiResult]:
        request = ThreatApiRequest(client=self._build_client_payload(), files=chunk)
        started = time.monotonic()

        try:
            response = client.post(self.url, json=request.model_dump(mode="json"))
        except httpx.TransportError as e:
            raise ThreatIntelTransportError(f"API request error: {e}") from e
        except httpx.HTTPError as e:
            raise ThreatIntelError(f"API request failed: {e}") from e

        elapsed = time.monotonic() - started
        status = response.status_code
        logger.info(f"status={status} in {elapsed:.2f}s (chunk {chunk_number})")

        if status >= 500:
            raise ThreatIntelServerError(status)
        if not response.is_success:
            raise ThreatIntelRejectedError(status)

        body = response.content
        logger.debug(
            f"response content-type={response.headers.get('content-type', 'unknown')} "
            f"bytes={len(body)}"
        )
        try:
            parsed = ThreatApiResponse.model_validate_json(body)
        except ValidationError as e:
            preview = body[:BODY_PREVIEW_BYTES].decode("utf-8", errors="replace")
            raise ThreatIntelParseError(
                f"Failed to parse API JSON: {e.error_count()} validation error(s)",
                body_preview=preview,
            ) from e

        if parsed.db_version is not None:
            self.last_db_version = parsed.db_version
        return parsed.results
