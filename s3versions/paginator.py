"""Pagination driver for listing calls.

Issues one page request at a time, following the store's continuation
markers until a page reports it is not truncated or the caller's item
cap is reached. Each page fetch is retried on transient failures.
"""

import logging
from typing import Any, Callable, Iterator, Optional

from s3versions.errors import DecodeError
from s3versions.models import (
    ContinuationToken,
    ListingKind,
    ListingRequest,
    PageResult,
    RawRecord,
)
from s3versions.retry import (
    DEFAULT_BASE_DELAY,
    DEFAULT_MAX_ATTEMPTS,
    DEFAULT_MAX_DELAY,
    retry_with_backoff,
)
from s3versions.transport import CancelToken

logger = logging.getLogger(__name__)

DEFAULT_PAGE_SIZE = 1000


class Paginator:
    """Walks the pages of one listing.

    A Paginator is single-use: the sequence it yields is backed by live
    network calls and cannot be replayed. After a failure,
    ``last_continuation`` holds the token of the first page that was not
    delivered, which a new listing can start from.

    Args:
        client: Object with ``fetch_page(request, cancel_token=...)``.
        max_attempts: Attempts per page, including the first.
        base_delay: Backoff ceiling after the first failure, in seconds.
        max_delay: Upper bound for any single backoff delay.
        cancel_token: Optional token to abort the listing.
        on_page: Called with (page_number, page) after each page is fetched.
        on_retry: Called with (attempt, error, delay) before each retry.
    """

    def __init__(
        self,
        client: Any,
        max_attempts: int = DEFAULT_MAX_ATTEMPTS,
        base_delay: float = DEFAULT_BASE_DELAY,
        max_delay: float = DEFAULT_MAX_DELAY,
        cancel_token: Optional[CancelToken] = None,
        on_page: Optional[Callable[[int, PageResult], None]] = None,
        on_retry: Optional[Callable[[int, Exception, float], None]] = None,
    ):
        self.client = client
        self.max_attempts = max_attempts
        self.base_delay = base_delay
        self.max_delay = max_delay
        self.cancel_token = cancel_token
        self.on_page = on_page
        self.on_retry = on_retry
        self.pages_fetched = 0
        self.records_yielded = 0
        self.last_continuation: Optional[ContinuationToken] = None

    def _fetch(self, request: ListingRequest) -> PageResult:
        return retry_with_backoff(
            self.client.fetch_page,
            max_attempts=self.max_attempts,
            base_delay=self.base_delay,
            max_delay=self.max_delay,
            cancel_token=self.cancel_token,
            on_retry=self.on_retry,
            args=(request,),
            kwargs={"cancel_token": self.cancel_token},
        )

    def iter_pages(self, request: ListingRequest) -> Iterator[PageResult]:
        """Yield pages starting at ``request`` until the listing is exhausted.

        Raises:
            DecodeError: If a truncated page does not advance the continuation.
            ListingError: Any non-retryable error, or RetryExhausted.
        """
        while True:
            self.last_continuation = request.continuation
            page = self._fetch(request)
            self.pages_fetched += 1
            logger.debug(
                "Page %d of s3://%s/%s: %d records, truncated=%s",
                self.pages_fetched, request.bucket, request.prefix,
                len(page.records), page.is_truncated,
            )
            if self.on_page is not None:
                self.on_page(self.pages_fetched, page)

            if not page.is_truncated:
                self.last_continuation = None
                yield page
                return

            token = page.next_continuation
            if token is None or token == request.continuation:
                # Deliver what arrived; resuming refetches this page
                yield page
                raise DecodeError(
                    f"Truncated page {self.pages_fetched} did not advance the continuation marker"
                )
            self.last_continuation = token
            yield page
            request = request.advance(token)

    def list_all(
        self,
        bucket: str,
        prefix: str = "",
        delimiter: Optional[str] = None,
        page_size: int = DEFAULT_PAGE_SIZE,
        max_items: Optional[int] = None,
        kind: ListingKind = ListingKind.VERSIONS,
        start: Optional[ContinuationToken] = None,
    ) -> Iterator[RawRecord]:
        """Yield every record of a listing, page by page, in server order.

        Args:
            bucket: Bucket to list.
            prefix: Only keys starting with this prefix.
            delimiter: Group keys sharing a segment into common prefixes.
            page_size: Maximum records per page request.
            max_items: Stop after this many records without error.
            kind: Version listing or plain object listing.
            start: Continuation to resume from instead of the first page.

        Yields:
            ObjectVersion, DeleteMarker and CommonPrefix records.
        """
        request = ListingRequest(
            bucket=bucket,
            prefix=prefix,
            delimiter=delimiter,
            max_keys=page_size,
            kind=kind,
        )
        if start is not None:
            request = request.advance(start)

        if max_items is not None and max_items <= 0:
            return

        for page in self.iter_pages(request):
            for record in page.records:
                yield record
                self.records_yielded += 1
                if max_items is not None and self.records_yielded >= max_items:
                    logger.debug("Item cap of %d reached", max_items)
                    return
