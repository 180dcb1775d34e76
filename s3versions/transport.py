"""HTTP transport for object-store requests.

The engine only needs ``send(method, url, headers, body)`` returning the
status, headers and body. HttpxTransport provides that on top of an
httpx client, mapping network failures to TransportError. A request sent
with a cancel token runs on a helper thread so that cancelling abandons
it without waiting for the response or the timeout.
"""

import logging
import threading
from abc import ABC, abstractmethod
from concurrent.futures import ThreadPoolExecutor, wait
from dataclasses import dataclass, field
from typing import Mapping, Optional

import httpx

from s3versions.errors import Cancelled, TransportError

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT = 30.0

# How often a pending request checks its cancel token, in seconds
CANCEL_POLL_INTERVAL = 0.05


class CancelToken:
    """Cooperative cancellation shared between a caller and a listing.

    Cancelling stops the listing at its next suspension point: before a
    request is sent, while a request is in flight or while waiting to
    retry.
    """

    def __init__(self):
        self._event = threading.Event()

    def cancel(self) -> None:
        self._event.set()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    def raise_if_cancelled(self) -> None:
        if self._event.is_set():
            raise Cancelled("Listing cancelled")

    def wait(self, seconds: float) -> None:
        """Sleep for ``seconds``, raising Cancelled if cancelled meanwhile."""
        if self._event.wait(seconds):
            raise Cancelled("Listing cancelled")


@dataclass
class TransportResponse:
    """Status, headers and body of a completed request."""

    status: int
    headers: dict[str, str] = field(default_factory=dict)
    body: bytes = b""


class Transport(ABC):
    """Abstract base class for request transports."""

    @abstractmethod
    def send(
        self,
        method: str,
        url: str,
        headers: Mapping[str, str],
        body: bytes = b"",
        cancel_token: Optional[CancelToken] = None,
    ) -> TransportResponse:
        """Perform one request and return its response."""
        pass

    def close(self) -> None:
        """Release any pooled connections."""
        pass


class HttpxTransport(Transport):
    """Transport backed by an httpx.Client.

    Args:
        timeout: Per-request timeout in seconds.
        transport: Optional httpx transport, e.g. httpx.MockTransport in tests.
    """

    def __init__(
        self,
        timeout: float = DEFAULT_TIMEOUT,
        transport: Optional[httpx.BaseTransport] = None,
    ):
        self.timeout = timeout
        self._client = httpx.Client(timeout=timeout, transport=transport)
        self._executor = ThreadPoolExecutor(thread_name_prefix="s3versions-http")

    def send(
        self,
        method: str,
        url: str,
        headers: Mapping[str, str],
        body: bytes = b"",
        cancel_token: Optional[CancelToken] = None,
    ) -> TransportResponse:
        if cancel_token is None:
            return self._request(method, url, headers, body)

        cancel_token.raise_if_cancelled()
        future = self._executor.submit(self._request, method, url, headers, body)
        while True:
            done, _ = wait([future], timeout=CANCEL_POLL_INTERVAL)
            if done:
                return future.result()
            if cancel_token.cancelled:
                # The helper thread finishes on its own; its response is discarded
                future.cancel()
                logger.debug("Abandoned in-flight %s %s", method, url)
                raise Cancelled("Listing cancelled during request")

    def _request(
        self,
        method: str,
        url: str,
        headers: Mapping[str, str],
        body: bytes,
    ) -> TransportResponse:
        try:
            response = self._client.request(
                method,
                url,
                headers=dict(headers),
                content=body or None,
            )
        except httpx.TimeoutException as e:
            raise TransportError(f"Request timed out after {self.timeout}s: {e}") from e
        except httpx.TransportError as e:
            raise TransportError(f"Connection failed: {e}") from e

        logger.debug("%s %s -> %d", method, url, response.status_code)
        return TransportResponse(
            status=response.status_code,
            headers=dict(response.headers),
            body=response.content,
        )

    def close(self) -> None:
        self._executor.shutdown(wait=False, cancel_futures=True)
        self._client.close()

    def __enter__(self) -> "HttpxTransport":
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> bool:
        self.close()
        return False
