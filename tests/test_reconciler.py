"""Tests for reconciler module."""

from datetime import datetime, timedelta, timezone

import pytest

from s3versions.models import (
    CommonPrefix,
    ContinuationToken,
    DeleteMarker,
    KeyState,
    ObjectVersion,
    PageResult,
)
from s3versions.paginator import Paginator
from s3versions.reconciler import (
    DUPLICATE,
    OUT_OF_ORDER,
    STALE_LATEST,
    classify,
    reconcile,
)

BASE_TIME = datetime(2024, 1, 1, tzinfo=timezone.utc)


def at(minutes):
    return BASE_TIME + timedelta(minutes=minutes)


def obj(key, version_id, minutes, is_latest=False):
    return ObjectVersion(
        key=key,
        version_id=version_id,
        is_latest=is_latest,
        size=10,
        last_modified=at(minutes),
        etag='"abc"',
    )


def marker(key, version_id, minutes, is_latest=False):
    return DeleteMarker(key=key, version_id=version_id, is_latest=is_latest, last_modified=at(minutes))


class TestReconcile:
    """Tests for grouping records into histories."""

    def test_groups_versions_by_key(self):
        """Delete marker over an older version, plus a live key and a prefix."""
        records = [
            marker("k1", "v2", 2, is_latest=True),
            obj("k1", "v1", 1),
            obj("k2", "v3", 3, is_latest=True),
            CommonPrefix("p/"),
        ]

        histories, prefixes = reconcile(records)

        assert list(histories) == ["k1", "k2"]
        assert histories["k1"].versions == [records[0], records[1]]
        assert histories["k1"].current_state == KeyState.DELETED
        assert histories["k2"].versions == [records[2]]
        assert histories["k2"].current_state == KeyState.LIVE
        assert prefixes == {"p/"}

    def test_marker_after_latest_object_in_store_order(self):
        """The example listing: k1's delete marker arrives after its object."""
        records = [
            obj("k1", "v1", 1, is_latest=True),
            marker("k1", "v2", 2),
            obj("k2", "v1", 0, is_latest=True),
        ]

        result = reconcile(records)

        assert [v.version_id for v in result.histories["k1"].versions] == ["v2", "v1"]
        assert result.histories["k1"].current_state == KeyState.DELETED
        assert result.histories["k2"].current_state == KeyState.LIVE
        assert result.histories["k2"].version_count == 1
        assert [v.reason for v in result.violations] == [OUT_OF_ORDER]

    def test_same_timestamp_keeps_latest_first(self):
        """Versions written in the same second keep the store's latest on top."""
        records = [
            marker("k", "AAA", 1, is_latest=True),
            obj("k", "zzz", 1),
        ]

        result = reconcile(records)

        assert [v.version_id for v in result.histories["k"].versions] == ["AAA", "zzz"]
        assert result.histories["k"].current_state == KeyState.DELETED
        assert result.violations == []

    def test_same_timestamp_keeps_arrival_order(self):
        records = [
            obj("k", "b", 1, is_latest=True),
            obj("k", "c", 1),
            obj("k", "a", 1),
        ]

        result = reconcile(records)

        assert [v.version_id for v in result.histories["k"].versions] == ["b", "c", "a"]

    def test_empty_listing(self):
        histories, prefixes = reconcile([])

        assert histories == {}
        assert prefixes == set()

    def test_prefixes_deduplicated(self):
        _, prefixes = reconcile([CommonPrefix("a/"), CommonPrefix("b/"), CommonPrefix("a/")])
        assert prefixes == {"a/", "b/"}

    def test_key_split_across_pages(self):
        """Versions of one key arriving in separate pages join one history."""
        page_one = [obj("k", "v3", 3, is_latest=True), obj("k", "v2", 2)]
        page_two = [obj("k", "v1", 1), obj("z", "v9", 0, is_latest=True)]

        result = reconcile(page_one + page_two)

        assert [v.version_id for v in result.histories["k"].versions] == ["v3", "v2", "v1"]
        assert result.violations == []

    def test_record_count_preserved(self):
        """Every version record ends up in exactly one history."""
        records = [
            obj("a", "v3", 3, is_latest=True),
            obj("a", "v2", 2),
            marker("b", "v5", 5, is_latest=True),
            obj("b", "v4", 4),
            obj("c", "v6", 6, is_latest=True),
        ]

        result = reconcile(records)

        assert sum(h.version_count for h in result.histories.values()) == len(records)

    def test_requested_key_absent(self):
        """A requested key with no records is reported as absent."""
        result = reconcile([obj("a", "v1", 1, is_latest=True)], requested_keys=["a", "missing"])

        assert result.histories["missing"].versions == []
        assert result.histories["missing"].current_state == KeyState.ABSENT
        assert result.histories["a"].current_state == KeyState.LIVE

    def test_unknown_record_type(self):
        with pytest.raises(TypeError):
            reconcile(["not-a-record"])

    def test_unversioned_objects(self):
        """Plain object listings have no version ids."""
        records = [
            ObjectVersion(key="a", version_id=None, is_latest=True, size=1, last_modified=at(0)),
            ObjectVersion(key="b", version_id=None, is_latest=True, size=2, last_modified=at(1)),
        ]

        result = reconcile(records)

        assert result.violations == []
        assert all(h.current_state == KeyState.LIVE for h in result.histories.values())


class TestOrderingViolations:
    """Tests for records that break newest-first ordering."""

    def test_older_latest_version(self):
        """A second record claiming to be latest is flagged."""
        records = [obj("k", "v2", 2, is_latest=True), obj("k", "v1", 1, is_latest=True)]

        result = reconcile(records)

        assert result.violations[0].reason == STALE_LATEST
        assert result.violations[0].version_id == "v1"
        assert result.histories["k"].version_count == 2

    def test_newer_after_older(self):
        """A newer record after an older one is flagged and still sorted."""
        records = [obj("k", "v1", 1, is_latest=True), obj("k", "v2", 5)]

        result = reconcile(records)

        assert [v.reason for v in result.violations] == [OUT_OF_ORDER]
        assert [v.version_id for v in result.histories["k"].versions] == ["v2", "v1"]

    def test_duplicate_version(self):
        """A version seen twice is flagged but not dropped."""
        records = [obj("k", "v2", 2, is_latest=True), obj("k", "v1", 1), obj("k", "v1", 1)]

        result = reconcile(records)

        assert [v.reason for v in result.violations] == [DUPLICATE]
        assert result.histories["k"].version_count == 3

    def test_violation_across_pages(self):
        """A newer version on a later page is caught after pagination."""
        pages = [
            PageResult(
                records=[obj("k", "v3", 3, is_latest=True), obj("k", "v2", 2)],
                is_truncated=True,
                next_continuation=ContinuationToken(key_marker="k", version_id_marker="v2"),
            ),
            PageResult(records=[obj("k", "v9", 9), obj("k", "v1", 1)]),
        ]

        class TwoPageClient:
            def fetch_page(self, request, cancel_token=None):
                return pages[0] if request.key_marker is None else pages[1]

        records = Paginator(TwoPageClient(), base_delay=0).list_all("bucket")
        result = reconcile(records)

        assert [(v.version_id, v.reason) for v in result.violations] == [("v9", OUT_OF_ORDER)]
        assert [v.version_id for v in result.histories["k"].versions] == ["v9", "v3", "v2", "v1"]
        assert result.histories["k"].current_state == KeyState.LIVE

    def test_warning_logged(self, caplog):
        with caplog.at_level("WARNING", logger="s3versions.reconciler"):
            reconcile([obj("k", "v1", 1), obj("k", "v2", 2)])

        assert "Ordering violation" in caplog.text


class TestClassify:
    """Tests for classify."""

    def test_states(self):
        assert classify([]) == KeyState.ABSENT
        assert classify([obj("k", "v1", 1)]) == KeyState.LIVE
        assert classify([marker("k", "v2", 2), obj("k", "v1", 1)]) == KeyState.DELETED
