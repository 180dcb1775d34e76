"""JSON reporter for structured output.

Writes every listing result of a run to a single JSON document, suitable
for scripting against the listing output.
"""

import json
from datetime import datetime, timezone
from pathlib import Path
from typing import Optional

from s3versions.models import ListingResult
from s3versions.reporters.base import Reporter


class JsonReporter(Reporter):
    """JSON reporter for structured output.

    Args:
        output_path: Optional file path to write JSON output
    """

    def __init__(self, output_path: Optional[str] = None):
        self.output_path = output_path
        self._results: list[ListingResult] = []

    def on_listing_start(self, bucket: str, prefix: str) -> None:
        """No-op for JSON reporter."""
        pass

    def on_page_complete(self, bucket: str, prefix: str, page_number: int, record_count: int) -> None:
        """No-op for JSON reporter."""
        pass

    def on_retry(self, bucket: str, prefix: str, attempt: int, error: Exception, delay: float) -> None:
        """No-op for JSON reporter."""
        pass

    def on_listing_complete(self, result: ListingResult) -> None:
        """Store the result for final output generation."""
        self._results.append(result)

    def generate_output(self) -> dict:
        """Build the JSON document for all results collected so far."""
        listings = [result.to_dict() for result in self._results]
        return {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "listings": listings,
            "summary": {
                "total_listings": len(listings),
                "complete": all(result.ok for result in self._results),
                "warnings": sum(len(result.warnings) for result in self._results),
            },
        }

    def write(self) -> dict:
        """Write the collected results to ``output_path``, if set.

        Returns:
            The generated JSON data as a dictionary
        """
        output = self.generate_output()
        if self.output_path:
            path = Path(self.output_path)

            # Create parent directories if needed
            path.parent.mkdir(parents=True, exist_ok=True)

            with open(path, "w", encoding="utf-8") as f:
                json.dump(output, f, indent=2)
        return output
