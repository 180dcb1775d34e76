"""Tests for JsonReporter.

Tests the JSON output reporter used for scripting against listings.
"""

import json
from datetime import datetime, timezone

from s3versions.errors import RetryExhausted
from s3versions.models import (
    ContinuationToken,
    DeleteMarker,
    KeyHistory,
    KeyState,
    ListingResult,
    ObjectVersion,
    OrderingViolation,
)
from s3versions.reporters.base import Reporter
from s3versions.reporters.json_reporter import JsonReporter

MODIFIED = datetime(2024, 3, 1, 10, 30, 0, tzinfo=timezone.utc)


def make_result(**kwargs):
    history = KeyHistory(
        key="a.txt",
        versions=[
            DeleteMarker("a.txt", "v2", True, MODIFIED),
            ObjectVersion("a.txt", "v1", False, 7, MODIFIED, '"ABC"'),
        ],
        current_state=KeyState.DELETED,
    )
    values = {"bucket": "bucket", "histories": {"a.txt": history}, "pages": 1, "records": 2}
    values.update(kwargs)
    return ListingResult(**values)


class TestJsonReporterInterface:
    """Tests that JsonReporter implements Reporter interface."""

    def test_inherits_from_reporter(self):
        """JsonReporter should inherit from Reporter."""
        assert isinstance(JsonReporter(), Reporter)

    def test_progress_callbacks_are_silent(self):
        reporter = JsonReporter()

        reporter.on_listing_start("bucket", "")
        reporter.on_page_complete("bucket", "", 1, 10)
        reporter.on_retry("bucket", "", 1, Exception("x"), 0.5)

        assert reporter.generate_output()["listings"] == []


class TestJsonReporterOutput:
    """Tests for the generated document."""

    def test_listing_serialized(self):
        reporter = JsonReporter()
        reporter.on_listing_complete(make_result())

        listing = reporter.generate_output()["listings"][0]

        assert listing["bucket"] == "bucket"
        assert listing["keys"]["a.txt"]["state"] == "deleted"
        versions = listing["keys"]["a.txt"]["versions"]
        assert versions[0] == {
            "type": "delete_marker",
            "version_id": "v2",
            "is_latest": True,
            "last_modified": "2024-03-01T10:30:00+00:00",
        }
        assert versions[1]["type"] == "version"
        assert versions[1]["size"] == 7
        assert versions[1]["etag"] == "abc"
        assert listing["summary"] == {
            "pages": 1,
            "records": 2,
            "keys": 1,
            "live": 0,
            "deleted": 1,
            "complete": True,
        }
        assert listing["error"] is None
        assert listing["resume"] is None

    def test_partial_listing_has_error_and_resume(self):
        reporter = JsonReporter()
        result = make_result(
            error=RetryExhausted("Operation failed after 4 attempts", attempts=4),
            resume_token=ContinuationToken(key_marker="a.txt", version_id_marker="v1"),
            warnings=[OrderingViolation("a.txt", "v1", "duplicate")],
        )
        reporter.on_listing_complete(result)

        output = reporter.generate_output()
        listing = output["listings"][0]

        assert listing["error"] == {
            "kind": "RetryExhausted",
            "message": "Operation failed after 4 attempts",
        }
        assert listing["resume"] == {
            "key_marker": "a.txt",
            "version_id_marker": "v1",
            "continuation_token": None,
        }
        assert listing["warnings"] == [{"key": "a.txt", "version_id": "v1", "reason": "duplicate"}]
        assert output["summary"] == {"total_listings": 1, "complete": False, "warnings": 1}

    def test_timestamp_present(self):
        output = JsonReporter().generate_output()
        datetime.fromisoformat(output["timestamp"])


class TestJsonReporterWrite:
    """Tests for writing the document to disk."""

    def test_writes_file_and_creates_directories(self, tmp_path):
        path = tmp_path / "out" / "results.json"
        reporter = JsonReporter(output_path=str(path))
        reporter.on_listing_complete(make_result(common_prefixes={"b/", "a/"}))

        returned = reporter.write()

        written = json.loads(path.read_text(encoding="utf-8"))
        assert written == returned
        assert written["listings"][0]["common_prefixes"] == ["a/", "b/"]

    def test_without_path_returns_data_only(self, tmp_path):
        reporter = JsonReporter()
        assert reporter.write()["summary"]["total_listings"] == 0
