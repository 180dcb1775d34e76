"""Folding of raw listing records into per-key version histories.

The store returns the versions of each key newest first, and a key's
versions may continue across page boundaries. Arrival order is checked
against that contract as records come in; anything that contradicts it is
reported as an OrderingViolation and nothing is dropped. Each finished
history is ordered newest first by last_modified. Ties keep the record the
store flagged as latest on top, then arrival order.
"""

import logging
from dataclasses import dataclass, field
from typing import Iterable, Iterator

from s3versions.models import (
    CommonPrefix,
    DeleteMarker,
    KeyHistory,
    KeyState,
    ObjectVersion,
    OrderingViolation,
    RawRecord,
    Version,
)

logger = logging.getLogger(__name__)

OUT_OF_ORDER = "out-of-order"
DUPLICATE = "duplicate"
STALE_LATEST = "stale-latest"


@dataclass
class Reconciliation:
    """Histories, common prefixes and any ordering anomalies."""

    histories: dict[str, KeyHistory] = field(default_factory=dict)
    common_prefixes: set[str] = field(default_factory=set)
    violations: list[OrderingViolation] = field(default_factory=list)

    def __iter__(self) -> Iterator:
        # Allows ``histories, prefixes = reconcile(records)``
        yield self.histories
        yield self.common_prefixes


def _recency(version: Version) -> tuple:
    # Version ids are opaque, so ties fall back to the stable sort
    return version.last_modified, version.is_latest


def classify(versions: list[Version]) -> KeyState:
    """Current state of a key given its versions, newest first."""
    if not versions:
        return KeyState.ABSENT
    newest = versions[0]
    if isinstance(newest, DeleteMarker):
        return KeyState.DELETED
    return KeyState.LIVE


def _check_order(
    history: KeyHistory,
    record: Version,
    seen_ids: set,
) -> list[OrderingViolation]:
    violations = []
    previous = history.versions[-1]

    if record.version_id is not None and record.version_id in seen_ids:
        violations.append(OrderingViolation(
            key=record.key,
            version_id=record.version_id,
            reason=DUPLICATE,
        ))

    if record.last_modified > previous.last_modified:
        violations.append(OrderingViolation(
            key=record.key,
            version_id=record.version_id,
            reason=OUT_OF_ORDER,
        ))
    elif record.is_latest:
        violations.append(OrderingViolation(
            key=record.key,
            version_id=record.version_id,
            reason=STALE_LATEST,
        ))

    return violations


def reconcile(
    records: Iterable[RawRecord],
    requested_keys: Iterable[str] = (),
) -> Reconciliation:
    """Group records by key into version histories.

    Args:
        records: Records in the order the store returned them.
        requested_keys: Keys the caller asked about; those with no records
            get an empty history in the ABSENT state.

    Returns:
        Reconciliation with histories in first-seen key order, the set of
        common prefixes and the ordering violations found.
    """
    result = Reconciliation()
    version_ids: dict[str, set] = {}

    for record in records:
        if isinstance(record, CommonPrefix):
            result.common_prefixes.add(record.prefix)
            continue

        if not isinstance(record, (ObjectVersion, DeleteMarker)):
            raise TypeError(f"Unexpected record type: {type(record).__name__}")

        history = result.histories.get(record.key)
        if history is None:
            history = KeyHistory(key=record.key)
            result.histories[record.key] = history
            version_ids[record.key] = set()
        else:
            for violation in _check_order(history, record, version_ids[record.key]):
                logger.warning(
                    "Ordering violation for %r version %s: %s",
                    violation.key, violation.version_id, violation.reason,
                )
                result.violations.append(violation)

        history.versions.append(record)
        if record.version_id is not None:
            version_ids[record.key].add(record.version_id)

    for key in requested_keys:
        if key not in result.histories:
            result.histories[key] = KeyHistory(key=key, current_state=KeyState.ABSENT)

    for history in result.histories.values():
        history.versions.sort(key=_recency, reverse=True)
        history.current_state = classify(history.versions)

    return result
