"""Base reporter interface."""

from abc import ABC, abstractmethod
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from s3versions.models import ListingResult


class Reporter(ABC):
    """Abstract base class for listing reporters."""

    @abstractmethod
    def on_listing_start(self, bucket: str, prefix: str) -> None:
        """Called when a listing begins."""
        pass

    @abstractmethod
    def on_page_complete(self, bucket: str, prefix: str, page_number: int, record_count: int) -> None:
        """Called after each page is fetched."""
        pass

    @abstractmethod
    def on_retry(self, bucket: str, prefix: str, attempt: int, error: Exception, delay: float) -> None:
        """Called before a failed page request is retried."""
        pass

    @abstractmethod
    def on_listing_complete(self, result: "ListingResult") -> None:
        """Called when a listing finishes, successfully or not."""
        pass
