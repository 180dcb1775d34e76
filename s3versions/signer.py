"""SigV4 request signing.

Builds the canonical request for a listing call, derives the scoped
signing key from the secret key and computes the Authorization header.
The output depends only on the inputs, so a fixed timestamp always
yields the same headers.
"""

import hashlib
import hmac
import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Mapping, Union
from urllib.parse import quote

from s3versions.errors import ClockError, InvalidCredentials
from s3versions.models import Credentials

logger = logging.getLogger(__name__)

ALGORITHM = "AWS4-HMAC-SHA256"

# SHA-256 of an empty body; listing requests never carry a payload
EMPTY_SHA256 = hashlib.sha256(b"").hexdigest()

# Timestamps outside this window mean the local clock is misconfigured
EARLIEST_TIMESTAMP = datetime(2010, 1, 1, tzinfo=timezone.utc)
LATEST_TIMESTAMP = datetime(2100, 1, 1, tzinfo=timezone.utc)

QueryParams = Union[Mapping[str, str], list[tuple[str, str]]]


@dataclass(frozen=True)
class RequestDescriptor:
    """The parts of an HTTP request that are covered by the signature."""

    method: str
    host: str
    path: str = "/"
    query: QueryParams = field(default_factory=dict)
    payload_hash: str = EMPTY_SHA256
    headers: Mapping[str, str] = field(default_factory=dict)


def uri_encode(value: str) -> str:
    """Percent-encode everything except RFC 3986 unreserved characters."""
    return quote(value, safe="-_.~")


def canonical_uri(path: str) -> str:
    """Encode a request path one segment at a time.

    S3 signs the path as sent, so dot segments and repeated slashes are
    kept as they are.
    """
    if not path:
        return "/"
    return "/".join(uri_encode(segment) for segment in path.split("/"))


def canonical_query(query: QueryParams) -> str:
    """Encode and sort query parameters.

    A parameter without a value (``?versions``) renders as ``versions=``.
    """
    items = query.items() if isinstance(query, Mapping) else query
    encoded = sorted(
        (uri_encode(str(name)), uri_encode(str(value))) for name, value in items
    )
    return "&".join(f"{name}={value}" for name, value in encoded)


def _normalize_header_value(value: str) -> str:
    return " ".join(str(value).split())


def canonical_headers(headers: Mapping[str, str]) -> tuple[str, str]:
    """Return the canonical header block and the signed-headers list."""
    normalized = sorted(
        (name.lower(), _normalize_header_value(value)) for name, value in headers.items()
    )
    block = "".join(f"{name}:{value}\n" for name, value in normalized)
    signed = ";".join(name for name, _ in normalized)
    return block, signed


def canonical_request(request: RequestDescriptor, headers: Mapping[str, str]) -> str:
    header_block, signed_headers = canonical_headers(headers)
    return "\n".join([
        request.method.upper(),
        canonical_uri(request.path),
        canonical_query(request.query),
        header_block,
        signed_headers,
        request.payload_hash,
    ])


def _hmac(key: bytes, msg: str) -> bytes:
    return hmac.new(key, msg.encode("utf-8"), hashlib.sha256).digest()


def derive_signing_key(secret_key: str, date_stamp: str, region: str, service: str) -> bytes:
    """Derive the scoped signing key through the HMAC chain."""
    k_date = _hmac(("AWS4" + secret_key).encode("utf-8"), date_stamp)
    k_region = _hmac(k_date, region)
    k_service = _hmac(k_region, service)
    return _hmac(k_service, "aws4_request")


def credential_scope(date_stamp: str, region: str, service: str) -> str:
    return f"{date_stamp}/{region}/{service}/aws4_request"


def string_to_sign(amz_date: str, scope: str, canonical: str) -> str:
    return "\n".join([
        ALGORITHM,
        amz_date,
        scope,
        hashlib.sha256(canonical.encode("utf-8")).hexdigest(),
    ])


def validate_credentials(credentials: Credentials) -> None:
    """Raise InvalidCredentials if any credential field is empty."""
    if not credentials.access_key:
        raise InvalidCredentials("Access key is empty")
    if not credentials.secret_key:
        raise InvalidCredentials("Secret key is empty")
    if credentials.session_token is not None and not credentials.session_token:
        raise InvalidCredentials("Session token is empty")


def validate_timestamp(timestamp: datetime) -> datetime:
    """Return the timestamp in UTC, or raise ClockError if implausible.

    Naive datetimes are taken to be UTC.
    """
    if timestamp.tzinfo is None:
        timestamp = timestamp.replace(tzinfo=timezone.utc)
    else:
        timestamp = timestamp.astimezone(timezone.utc)

    if not EARLIEST_TIMESTAMP <= timestamp < LATEST_TIMESTAMP:
        raise ClockError(
            f"Signing timestamp {timestamp.isoformat()} is outside the accepted "
            f"window [{EARLIEST_TIMESTAMP.date()}, {LATEST_TIMESTAMP.date()}); "
            "check the system clock"
        )
    return timestamp


def sign(
    request: RequestDescriptor,
    credentials: Credentials,
    region: str,
    timestamp: datetime,
    service: str = "s3",
) -> dict[str, str]:
    """Compute the headers that authenticate ``request``.

    Args:
        request: Method, host, path, query and payload hash to sign.
        credentials: Access key, secret key and optional session token.
        region: Region used in the credential scope.
        timestamp: Signing time. Pass the same value to get the same headers.
        service: Service name used in the credential scope.

    Returns:
        Headers to send: host, x-amz-content-sha256, x-amz-date, the
        session token when present, any extra descriptor headers, and
        authorization.

    Raises:
        InvalidCredentials: If a credential field is empty.
        ClockError: If the timestamp is outside the sanity window.
    """
    validate_credentials(credentials)
    timestamp = validate_timestamp(timestamp)

    amz_date = timestamp.strftime("%Y%m%dT%H%M%SZ")
    date_stamp = timestamp.strftime("%Y%m%d")

    headers: dict[str, str] = {
        "host": request.host,
        "x-amz-content-sha256": request.payload_hash,
        "x-amz-date": amz_date,
    }
    if credentials.session_token:
        headers["x-amz-security-token"] = credentials.session_token
    for name, value in request.headers.items():
        headers[name.lower()] = value

    canonical = canonical_request(request, headers)
    scope = credential_scope(date_stamp, region, service)
    to_sign = string_to_sign(amz_date, scope, canonical)

    signing_key = derive_signing_key(credentials.secret_key, date_stamp, region, service)
    signature = hmac.new(signing_key, to_sign.encode("utf-8"), hashlib.sha256).hexdigest()

    _, signed_headers = canonical_headers(headers)
    headers["authorization"] = (
        f"{ALGORITHM} Credential={credentials.access_key}/{scope}, "
        f"SignedHeaders={signed_headers}, Signature={signature}"
    )

    logger.debug("Signed %s %s with scope %s", request.method, request.path, scope)
    return headers
