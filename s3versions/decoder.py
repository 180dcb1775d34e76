"""Decoding of object-store listing responses.

Handles the three documents the lister reads:
- ListVersionsResult (ListObjectVersions)
- ListBucketResult (ListObjectsV2)
- VersioningConfiguration (GetBucketVersioning)

Error documents and error statuses become ApiError. Records keep the
order the server returned them in.
"""

import xml.etree.ElementTree as ET
from datetime import datetime, timezone
from typing import Optional

from s3versions.errors import ApiError, DecodeError, MissingField
from s3versions.models import (
    CommonPrefix,
    ContinuationToken,
    DeleteMarker,
    ObjectVersion,
    PageResult,
    RawRecord,
)


def _local_name(tag: str) -> str:
    """Strip the XML namespace from a tag."""
    return tag.rsplit("}", 1)[-1]


def _child(element: ET.Element, name: str) -> Optional[ET.Element]:
    for child in element:
        if _local_name(child.tag) == name:
            return child
    return None


def _text(element: ET.Element, name: str) -> Optional[str]:
    child = _child(element, name)
    if child is None:
        return None
    return child.text or ""


def _required(element: ET.Element, name: str) -> str:
    value = _text(element, name)
    if value is None:
        raise MissingField(name, _local_name(element.tag))
    return value


def parse_bool(value: str, name: str) -> bool:
    lowered = value.strip().lower()
    if lowered == "true":
        return True
    if lowered == "false":
        return False
    raise DecodeError(f"Invalid boolean for '{name}': {value!r}")


def parse_int(value: str, name: str) -> int:
    try:
        return int(value.strip())
    except ValueError as e:
        raise DecodeError(f"Invalid integer for '{name}': {value!r}") from e


def parse_timestamp(value: str, name: str = "LastModified") -> datetime:
    """Parse an ISO 8601 timestamp such as ``2009-10-12T17:50:30.000Z``."""
    text = value.strip()
    if text.endswith("Z"):
        text = text[:-1] + "+00:00"
    try:
        parsed = datetime.fromisoformat(text)
    except ValueError as e:
        raise DecodeError(f"Invalid timestamp for '{name}': {value!r}") from e
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def _parse_document(body: bytes) -> ET.Element:
    try:
        return ET.fromstring(body)
    except ET.ParseError as e:
        raise DecodeError(f"Malformed XML response: {e}") from e


def decode_api_error(body: bytes, status: Optional[int] = None) -> ApiError:
    """Build an ApiError from an error response.

    Bodies that are empty or not an <Error> document still produce an
    ApiError keyed on the HTTP status.
    """
    fallback = ApiError(f"HTTP{status}" if status else "UnknownError", status=status)
    if not body or not body.strip():
        return fallback
    try:
        root = ET.fromstring(body)
    except ET.ParseError:
        return fallback
    if _local_name(root.tag) != "Error":
        return fallback
    return ApiError(
        code=_text(root, "Code") or fallback.code,
        message=_text(root, "Message") or "",
        request_id=_text(root, "RequestId"),
        status=status,
    )


def _decode_version(element: ET.Element) -> ObjectVersion:
    size = _text(element, "Size")
    is_latest = _text(element, "IsLatest")
    return ObjectVersion(
        key=_required(element, "Key"),
        version_id=_required(element, "VersionId"),
        is_latest=parse_bool(is_latest, "IsLatest") if is_latest is not None else False,
        size=parse_int(size, "Size") if size else 0,
        last_modified=parse_timestamp(_required(element, "LastModified")),
        etag=_text(element, "ETag") or "",
    )


def _decode_delete_marker(element: ET.Element) -> DeleteMarker:
    is_latest = _text(element, "IsLatest")
    return DeleteMarker(
        key=_required(element, "Key"),
        version_id=_required(element, "VersionId"),
        is_latest=parse_bool(is_latest, "IsLatest") if is_latest is not None else False,
        last_modified=parse_timestamp(_required(element, "LastModified")),
    )


def _decode_contents(element: ET.Element) -> ObjectVersion:
    size = _text(element, "Size")
    return ObjectVersion(
        key=_required(element, "Key"),
        version_id=None,
        is_latest=True,
        size=parse_int(size, "Size") if size else 0,
        last_modified=parse_timestamp(_required(element, "LastModified")),
        etag=_text(element, "ETag") or "",
    )


def _decode_common_prefix(element: ET.Element) -> CommonPrefix:
    return CommonPrefix(prefix=_required(element, "Prefix"))


def _decode_versions_result(root: ET.Element) -> PageResult:
    records: list[RawRecord] = []
    for child in root:
        name = _local_name(child.tag)
        if name == "Version":
            records.append(_decode_version(child))
        elif name == "DeleteMarker":
            records.append(_decode_delete_marker(child))
        elif name == "CommonPrefixes":
            records.append(_decode_common_prefix(child))

    is_truncated = parse_bool(_required(root, "IsTruncated"), "IsTruncated")
    next_continuation = None
    if is_truncated:
        next_continuation = ContinuationToken(
            key_marker=_required(root, "NextKeyMarker"),
            version_id_marker=_text(root, "NextVersionIdMarker") or None,
        )
    return PageResult(
        records=records,
        is_truncated=is_truncated,
        next_continuation=next_continuation,
    )


def _decode_bucket_result(root: ET.Element) -> PageResult:
    records: list[RawRecord] = []
    for child in root:
        name = _local_name(child.tag)
        if name == "Contents":
            records.append(_decode_contents(child))
        elif name == "CommonPrefixes":
            records.append(_decode_common_prefix(child))

    is_truncated = parse_bool(_required(root, "IsTruncated"), "IsTruncated")
    next_continuation = None
    if is_truncated:
        next_continuation = ContinuationToken(
            continuation_token=_required(root, "NextContinuationToken"),
        )
    return PageResult(
        records=records,
        is_truncated=is_truncated,
        next_continuation=next_continuation,
    )


def decode(body: bytes, status: int = 200) -> PageResult:
    """Decode a listing response body into a PageResult.

    Args:
        body: Raw response body.
        status: HTTP status of the response.

    Returns:
        PageResult with records in server order.

    Raises:
        ApiError: If the status is an error or the body is an <Error> document.
        MissingField: If a required element is absent.
        DecodeError: If the body is malformed or of an unexpected type.
    """
    if status >= 400:
        raise decode_api_error(body, status)

    root = _parse_document(body)
    name = _local_name(root.tag)

    if name == "Error":
        raise decode_api_error(body, status)
    if name == "ListVersionsResult":
        return _decode_versions_result(root)
    if name == "ListBucketResult":
        return _decode_bucket_result(root)
    raise DecodeError(f"Unexpected response document <{name}>")


def decode_versioning(body: bytes, status: int = 200) -> Optional[str]:
    """Return the bucket versioning status, or None if never configured."""
    if status >= 400:
        raise decode_api_error(body, status)

    root = _parse_document(body)
    name = _local_name(root.tag)
    if name == "Error":
        raise decode_api_error(body, status)
    if name != "VersioningConfiguration":
        raise DecodeError(f"Unexpected response document <{name}>")
    return _text(root, "Status") or None
