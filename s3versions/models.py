"""Data models for the version lister."""

from dataclasses import dataclass, field, replace
from datetime import datetime
from enum import Enum
from typing import TYPE_CHECKING, Any, Optional, Union

if TYPE_CHECKING:
    from s3versions.errors import ListingError


class ListingKind(Enum):
    """Which listing API a request targets."""

    VERSIONS = "versions"
    OBJECTS = "objects"


class KeyState(Enum):
    """Current state of a key after reconciliation."""

    LIVE = "live"
    DELETED = "deleted"
    ABSENT = "absent"


@dataclass(frozen=True)
class Credentials:
    """Access credentials for the object store."""

    access_key: str
    secret_key: str = field(repr=False)
    session_token: Optional[str] = field(default=None, repr=False)


@dataclass
class StoreConfig:
    """Connection settings for an S3-compatible object store."""

    access_key: str
    secret_key: str = field(repr=False)
    bucket_name: str = ""
    region: str = "us-east-1"
    endpoint_url: str = ""
    session_token: Optional[str] = field(default=None, repr=False)
    addressing_style: str = "path"

    @property
    def credentials(self) -> Credentials:
        return Credentials(
            access_key=self.access_key,
            secret_key=self.secret_key,
            session_token=self.session_token,
        )


@dataclass(frozen=True)
class ContinuationToken:
    """Where the next page of a listing resumes.

    Version listings resume from a key marker plus version-id marker,
    object listings from an opaque continuation token.
    """

    key_marker: Optional[str] = None
    version_id_marker: Optional[str] = None
    continuation_token: Optional[str] = None


@dataclass(frozen=True)
class ListingRequest:
    """Parameters for a single listing page."""

    bucket: str
    prefix: str = ""
    delimiter: Optional[str] = None
    max_keys: int = 1000
    key_marker: Optional[str] = None
    version_id_marker: Optional[str] = None
    continuation_token: Optional[str] = None
    kind: ListingKind = ListingKind.VERSIONS

    @property
    def continuation(self) -> ContinuationToken:
        return ContinuationToken(
            key_marker=self.key_marker,
            version_id_marker=self.version_id_marker,
            continuation_token=self.continuation_token,
        )

    def advance(self, token: ContinuationToken) -> "ListingRequest":
        """Return the request for the page that starts at ``token``."""
        return replace(
            self,
            key_marker=token.key_marker,
            version_id_marker=token.version_id_marker,
            continuation_token=token.continuation_token,
        )

    def query_params(self) -> dict[str, str]:
        """Query parameters for this page, before canonical encoding."""
        params: dict[str, str] = {}
        if self.kind == ListingKind.VERSIONS:
            params["versions"] = ""
        else:
            params["list-type"] = "2"
        if self.prefix:
            params["prefix"] = self.prefix
        if self.delimiter:
            params["delimiter"] = self.delimiter
        params["max-keys"] = str(self.max_keys)
        if self.kind == ListingKind.VERSIONS:
            if self.key_marker:
                params["key-marker"] = self.key_marker
            if self.version_id_marker:
                params["version-id-marker"] = self.version_id_marker
        elif self.continuation_token:
            params["continuation-token"] = self.continuation_token
        return params


@dataclass(frozen=True)
class ObjectVersion:
    """One stored version of an object."""

    key: str
    version_id: Optional[str]
    is_latest: bool
    size: int
    last_modified: datetime
    etag: str = ""

    @property
    def etag_hex(self) -> str:
        """ETag without quotes, lower-cased."""
        return self.etag.strip('"').lower()


@dataclass(frozen=True)
class DeleteMarker:
    """A delete marker hiding earlier versions of a key."""

    key: str
    version_id: str
    is_latest: bool
    last_modified: datetime


@dataclass(frozen=True)
class CommonPrefix:
    """A key-space segment grouped by the delimiter."""

    prefix: str


RawRecord = Union[ObjectVersion, DeleteMarker, CommonPrefix]
Version = Union[ObjectVersion, DeleteMarker]


@dataclass
class PageResult:
    """Records decoded from one listing page, in server order."""

    records: list[RawRecord] = field(default_factory=list)
    is_truncated: bool = False
    next_continuation: Optional[ContinuationToken] = None


@dataclass
class KeyHistory:
    """Versions of a single key, most recent first."""

    key: str
    versions: list[Version] = field(default_factory=list)
    current_state: KeyState = KeyState.ABSENT

    @property
    def latest(self) -> Optional[Version]:
        return self.versions[0] if self.versions else None

    @property
    def version_count(self) -> int:
        return len(self.versions)

    @property
    def has_history(self) -> bool:
        """True when older versions exist behind the current one."""
        return len(self.versions) > 1


@dataclass(frozen=True)
class OrderingViolation:
    """A record that contradicts the newest-first ordering of its key."""

    key: str
    version_id: Optional[str]
    reason: str


def version_to_dict(version: Version) -> dict[str, Any]:
    """Serialize a version record for JSON output."""
    data: dict[str, Any] = {
        "type": "version" if isinstance(version, ObjectVersion) else "delete_marker",
        "version_id": version.version_id,
        "is_latest": version.is_latest,
        "last_modified": version.last_modified.isoformat(),
    }
    if isinstance(version, ObjectVersion):
        data["size"] = version.size
        data["etag"] = version.etag_hex
    return data


@dataclass
class ListingResult:
    """Reconciled outcome of one listing operation.

    A listing aborted by a fatal error still carries everything reconciled
    before the error, plus the token to resume from.
    """

    bucket: str
    prefix: str = ""
    histories: dict[str, KeyHistory] = field(default_factory=dict)
    common_prefixes: set[str] = field(default_factory=set)
    warnings: list[OrderingViolation] = field(default_factory=list)
    error: Optional["ListingError"] = None
    pages: int = 0
    records: int = 0
    resume_token: Optional[ContinuationToken] = None

    @property
    def ok(self) -> bool:
        return self.error is None

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        keys = {}
        for key, history in self.histories.items():
            keys[key] = {
                "state": history.current_state.value,
                "versions": [version_to_dict(v) for v in history.versions],
            }

        error = None
        if self.error is not None:
            error = {
                "kind": type(self.error).__name__,
                "message": str(self.error),
            }

        resume = None
        if self.resume_token is not None:
            resume = {
                "key_marker": self.resume_token.key_marker,
                "version_id_marker": self.resume_token.version_id_marker,
                "continuation_token": self.resume_token.continuation_token,
            }

        return {
            "bucket": self.bucket,
            "prefix": self.prefix,
            "keys": keys,
            "common_prefixes": sorted(self.common_prefixes),
            "warnings": [
                {"key": w.key, "version_id": w.version_id, "reason": w.reason}
                for w in self.warnings
            ],
            "error": error,
            "resume": resume,
            "summary": {
                "pages": self.pages,
                "records": self.records,
                "keys": len(self.histories),
                "live": sum(
                    1 for h in self.histories.values() if h.current_state == KeyState.LIVE
                ),
                "deleted": sum(
                    1 for h in self.histories.values() if h.current_state == KeyState.DELETED
                ),
                "complete": self.ok,
            },
        }
