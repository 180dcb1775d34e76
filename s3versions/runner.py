"""Listing orchestrator.

Coordinates a listing from first page to reconciled result:
- Pagination with retry
- Reconciliation of the records received
- Partial results when a fatal error stops the listing
- Reporter callbacks
"""

import hashlib
import logging
from concurrent.futures import ThreadPoolExecutor
from typing import Any, Iterable, Optional

from s3versions.errors import ListingError
from s3versions.models import (
    ContinuationToken,
    ListingKind,
    ListingResult,
    ObjectVersion,
    RawRecord,
)
from s3versions.paginator import DEFAULT_PAGE_SIZE, Paginator
from s3versions.reconciler import reconcile
from s3versions.retry import DEFAULT_BASE_DELAY, DEFAULT_MAX_ATTEMPTS, DEFAULT_MAX_DELAY
from s3versions.transport import CancelToken

logger = logging.getLogger(__name__)

VERSIONING_ENABLED = "Enabled"


def md5_of_file(file_path: str, chunk_size: int = 1024 * 1024) -> str:
    """Hex MD5 digest of a local file, read in chunks."""
    digest = hashlib.md5()
    with open(file_path, "rb") as f:
        while True:
            chunk = f.read(chunk_size)
            if not chunk:
                break
            digest.update(chunk)
    return digest.hexdigest()


class ListingRunner:
    """Runs listings against one object store.

    Args:
        client: ObjectStoreClient (or anything with fetch_page and
            get_bucket_versioning).
        reporter: Optional reporter for progress callbacks.
        max_attempts: Attempts per page, including the first.
        base_delay: Backoff ceiling after the first failure, in seconds.
        max_delay: Upper bound for any single backoff delay.
        cancel_token: Optional token shared by every listing of this runner.
    """

    def __init__(
        self,
        client: Any,
        reporter: Optional[Any] = None,
        max_attempts: int = DEFAULT_MAX_ATTEMPTS,
        base_delay: float = DEFAULT_BASE_DELAY,
        max_delay: float = DEFAULT_MAX_DELAY,
        cancel_token: Optional[CancelToken] = None,
    ):
        self.client = client
        self.reporter = reporter
        self.max_attempts = max_attempts
        self.base_delay = base_delay
        self.max_delay = max_delay
        self.cancel_token = cancel_token

    def _paginator(self, bucket: str, prefix: str) -> Paginator:
        on_page = None
        on_retry = None
        if self.reporter:
            def on_page(number, page):
                self.reporter.on_page_complete(bucket, prefix, number, len(page.records))

            def on_retry(attempt, error, delay):
                self.reporter.on_retry(bucket, prefix, attempt, error, delay)

        return Paginator(
            self.client,
            max_attempts=self.max_attempts,
            base_delay=self.base_delay,
            max_delay=self.max_delay,
            cancel_token=self.cancel_token,
            on_page=on_page,
            on_retry=on_retry,
        )

    def check_versioning(self, bucket: str) -> bool:
        """Return True if versioning is enabled on ``bucket``."""
        status = self.client.get_bucket_versioning(bucket, cancel_token=self.cancel_token)
        logger.debug("Versioning status of %s: %s", bucket, status)
        return status == VERSIONING_ENABLED

    def run(
        self,
        bucket: str,
        prefix: str = "",
        delimiter: Optional[str] = None,
        page_size: int = DEFAULT_PAGE_SIZE,
        max_items: Optional[int] = None,
        kind: ListingKind = ListingKind.VERSIONS,
        start: Optional[ContinuationToken] = None,
        requested_keys: Iterable[str] = (),
        report_complete: bool = True,
    ) -> ListingResult:
        """List and reconcile one prefix.

        Fatal errors do not propagate: the result carries the error, the
        histories reconciled from the records already received, and the
        continuation to resume from.

        Set ``report_complete`` to False when the caller reports the result
        itself.

        Returns:
            ListingResult for the prefix.
        """
        if self.reporter:
            self.reporter.on_listing_start(bucket, prefix)

        paginator = self._paginator(bucket, prefix)
        received: list[RawRecord] = []
        error: Optional[ListingError] = None

        try:
            for record in paginator.list_all(
                bucket,
                prefix=prefix,
                delimiter=delimiter,
                page_size=page_size,
                max_items=max_items,
                kind=kind,
                start=start,
            ):
                received.append(record)
        except ListingError as e:
            logger.warning("Listing of s3://%s/%s stopped: %s", bucket, prefix, e)
            error = e

        reconciliation = reconcile(received, requested_keys=requested_keys)
        result = ListingResult(
            bucket=bucket,
            prefix=prefix,
            histories=reconciliation.histories,
            common_prefixes=reconciliation.common_prefixes,
            warnings=reconciliation.violations,
            error=error,
            pages=paginator.pages_fetched,
            records=len(received),
            resume_token=paginator.last_continuation if error is not None else None,
        )

        if self.reporter and report_complete:
            self.reporter.on_listing_complete(result)

        return result

    def list_versions(
        self,
        bucket: str,
        prefix: str = "",
        delimiter: Optional[str] = None,
        page_size: int = DEFAULT_PAGE_SIZE,
        max_items: Optional[int] = None,
        start: Optional[ContinuationToken] = None,
        requested_keys: Iterable[str] = (),
    ) -> ListingResult:
        """Reconciled version histories under ``prefix``."""
        return self.run(
            bucket,
            prefix=prefix,
            delimiter=delimiter,
            page_size=page_size,
            max_items=max_items,
            kind=ListingKind.VERSIONS,
            start=start,
            requested_keys=requested_keys,
        )

    def list_objects(
        self,
        bucket: str,
        prefix: str = "",
        delimiter: Optional[str] = None,
        page_size: int = DEFAULT_PAGE_SIZE,
        max_items: Optional[int] = None,
    ) -> ListingResult:
        """Current objects under ``prefix`` (no version history)."""
        return self.run(
            bucket,
            prefix=prefix,
            delimiter=delimiter,
            page_size=page_size,
            max_items=max_items,
            kind=ListingKind.OBJECTS,
        )

    def list_versions_many(
        self,
        bucket: str,
        prefixes: list[str],
        max_workers: int = 4,
        **kwargs: Any,
    ) -> list[ListingResult]:
        """List several prefixes concurrently, one thread per listing.

        Completed results reach the reporter only once every listing has
        finished, in the order of ``prefixes``.

        Returns:
            Results in the order of ``prefixes``.
        """
        if len(prefixes) <= 1 or max_workers <= 1:
            return [self.list_versions(bucket, prefix=p, **kwargs) for p in prefixes]

        with ThreadPoolExecutor(max_workers=min(max_workers, len(prefixes))) as executor:
            futures = [
                executor.submit(
                    self.run,
                    bucket,
                    prefix=p,
                    kind=ListingKind.VERSIONS,
                    report_complete=False,
                    **kwargs,
                )
                for p in prefixes
            ]
            try:
                results = [future.result() for future in futures]
            except KeyboardInterrupt:
                if self.cancel_token is not None:
                    self.cancel_token.cancel()
                raise

        if self.reporter:
            for result in results:
                self.reporter.on_listing_complete(result)
        return results

    def find_version_by_hash(
        self,
        bucket: str,
        key: str,
        md5_hex: str,
    ) -> tuple[Optional[str], ListingResult]:
        """Find the version of ``key`` whose ETag equals ``md5_hex``.

        Only single-part uploads have an MD5 ETag, so multipart versions
        never match.

        Returns:
            (version_id or None, the listing result that was searched)
        """
        result = self.list_versions(bucket, prefix=key, requested_keys=[key])
        history = result.histories.get(key)
        wanted = md5_hex.lower()
        if history is not None:
            for version in history.versions:
                if isinstance(version, ObjectVersion) and version.etag_hex == wanted:
                    return version.version_id, result
        return None, result
