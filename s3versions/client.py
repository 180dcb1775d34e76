"""Object-store client for listing calls.

Turns a ListingRequest into a signed GET, sends it through the transport
and decodes the response. Every call signs with a fresh timestamp, so a
retried call is re-signed.
"""

import logging
from datetime import datetime, timezone
from typing import Callable, Optional

import httpx

from s3versions import decoder
from s3versions.models import ListingRequest, PageResult, StoreConfig
from s3versions.signer import RequestDescriptor, canonical_query, canonical_uri, sign
from s3versions.transport import DEFAULT_TIMEOUT, CancelToken, HttpxTransport, Transport

logger = logging.getLogger(__name__)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class ObjectStoreClient:
    """Signs and sends listing requests for one store.

    Holds only read-only state, so one client can serve concurrent
    listings.

    Args:
        config: Endpoint, region, credentials and addressing style.
        transport: Transport used to send requests.
        clock: Returns the signing time; defaults to the current UTC time.
    """

    def __init__(
        self,
        config: StoreConfig,
        transport: Transport,
        clock: Optional[Callable[[], datetime]] = None,
    ):
        self.config = config
        self.transport = transport
        self.clock = clock or _utcnow
        self._credentials = config.credentials

        endpoint = httpx.URL(config.endpoint_url)
        self._scheme = endpoint.scheme
        self._host = endpoint.host
        self._port = endpoint.port
        self._base_path = endpoint.path.rstrip("/")

    def _host_header(self, host: str) -> str:
        if self._port is None:
            return host
        return f"{host}:{self._port}"

    def resolve(self, bucket: str) -> tuple[str, str]:
        """Return the (host, path) that address ``bucket``."""
        if self.config.addressing_style == "virtual":
            return self._host_header(f"{bucket}.{self._host}"), self._base_path + "/"
        return self._host_header(self._host), f"{self._base_path}/{bucket}"

    def _get(
        self,
        bucket: str,
        params: dict[str, str],
        cancel_token: Optional[CancelToken] = None,
    ):
        host, path = self.resolve(bucket)
        descriptor = RequestDescriptor(method="GET", host=host, path=path, query=params)
        headers = sign(descriptor, self._credentials, self.config.region, self.clock())

        # Send exactly the encoded path and query that were signed
        url = f"{self._scheme}://{host}{canonical_uri(path)}"
        query = canonical_query(params)
        if query:
            url = f"{url}?{query}"

        logger.debug("GET %s", url)
        return self.transport.send("GET", url, headers, b"", cancel_token=cancel_token)

    def fetch_page(
        self,
        request: ListingRequest,
        cancel_token: Optional[CancelToken] = None,
    ) -> PageResult:
        """Fetch and decode one listing page.

        Raises:
            ApiError: If the store returns an error.
            DecodeError: If the response cannot be decoded.
            TransportError: If the request fails at the network level.
        """
        response = self._get(request.bucket, request.query_params(), cancel_token)
        return decoder.decode(response.body, response.status)

    def get_bucket_versioning(
        self,
        bucket: str,
        cancel_token: Optional[CancelToken] = None,
    ) -> Optional[str]:
        """Return the bucket's versioning status ("Enabled", "Suspended" or None)."""
        response = self._get(bucket, {"versioning": ""}, cancel_token)
        return decoder.decode_versioning(response.body, response.status)

    def close(self) -> None:
        self.transport.close()


def build_client(
    config: StoreConfig,
    timeout: float = DEFAULT_TIMEOUT,
    transport: Optional[httpx.BaseTransport] = None,
) -> ObjectStoreClient:
    """Build a client for the given store configuration.

    Args:
        config: Store configuration containing endpoint, credentials,
               region, and addressing style.
        timeout: Per-request timeout in seconds.
        transport: Optional httpx transport to route requests through.

    Returns:
        An ObjectStoreClient backed by an httpx transport.
    """
    return ObjectStoreClient(config, HttpxTransport(timeout=timeout, transport=transport))
