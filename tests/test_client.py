"""Tests for client module."""

from datetime import datetime, timedelta, timezone

import httpx
import pytest

from s3versions.client import ObjectStoreClient, build_client
from s3versions.errors import ApiError, ClockError
from s3versions.models import ListingKind, ListingRequest, ObjectVersion, StoreConfig
from s3versions.signer import RequestDescriptor, sign
from s3versions.transport import HttpxTransport

FIXED_TIME = datetime(2024, 5, 1, 12, 0, 0, tzinfo=timezone.utc)

PAGE = b"""<ListVersionsResult>
  <IsTruncated>false</IsTruncated>
  <Version>
    <Key>docs/a.txt</Key><VersionId>v1</VersionId><IsLatest>true</IsLatest>
    <LastModified>2024-03-01T10:00:00.000Z</LastModified><Size>7</Size>
  </Version>
</ListVersionsResult>"""


def make_config(**overrides):
    values = {
        "access_key": "AKIDEXAMPLE",
        "secret_key": "secret",
        "bucket_name": "my-bucket",
        "region": "us-east-1",
        "endpoint_url": "https://s3.example.com",
    }
    values.update(overrides)
    return StoreConfig(**values)


def make_client(handler, clock=lambda: FIXED_TIME, **overrides):
    transport = HttpxTransport(transport=httpx.MockTransport(handler))
    return ObjectStoreClient(make_config(**overrides), transport, clock=clock)


class RecordingHandler:
    """MockTransport handler that records requests and replays responses."""

    def __init__(self, *responses):
        self.responses = list(responses) or [httpx.Response(200, content=PAGE)]
        self.requests = []

    def __call__(self, request):
        self.requests.append(request)
        if len(self.responses) > 1:
            return self.responses.pop(0)
        return self.responses[0]


class TestResolve:
    """Tests for bucket addressing."""

    def test_path_style(self):
        client = make_client(RecordingHandler())
        assert client.resolve("my-bucket") == ("s3.example.com", "/my-bucket")

    def test_virtual_style(self):
        client = make_client(RecordingHandler(), addressing_style="virtual")
        assert client.resolve("my-bucket") == ("my-bucket.s3.example.com", "/")

    def test_port_kept_in_host(self):
        client = make_client(RecordingHandler(), endpoint_url="http://localhost:9000")
        assert client.resolve("b") == ("localhost:9000", "/b")

    def test_endpoint_base_path(self):
        """A path on the endpoint is prefixed to the bucket path."""
        client = make_client(RecordingHandler(), endpoint_url="https://gw.example.com/storage/")
        assert client.resolve("b") == ("gw.example.com", "/storage/b")


class TestFetchPage:
    """Tests for fetch_page."""

    def test_sends_signed_versions_request(self):
        """The request carries the signed query, host and authorization."""
        handler = RecordingHandler()
        client = make_client(handler)
        request = ListingRequest(bucket="my-bucket", prefix="docs/", delimiter="/", max_keys=2)

        client.fetch_page(request)

        sent = handler.requests[0]
        assert sent.method == "GET"
        assert sent.url.host == "s3.example.com"
        assert sent.url.path == "/my-bucket"
        assert sent.url.query == b"delimiter=%2F&max-keys=2&prefix=docs%2F&versions="

        expected = sign(
            RequestDescriptor(
                method="GET",
                host="s3.example.com",
                path="/my-bucket",
                query=request.query_params(),
            ),
            make_config().credentials,
            "us-east-1",
            FIXED_TIME,
        )
        assert sent.headers["authorization"] == expected["authorization"]
        assert sent.headers["x-amz-date"] == "20240501T120000Z"

    def test_object_listing_uses_list_type_2(self):
        handler = RecordingHandler(
            httpx.Response(
                200, content=b"<ListBucketResult><IsTruncated>false</IsTruncated></ListBucketResult>"
            )
        )
        client = make_client(handler)

        client.fetch_page(
            ListingRequest(bucket="my-bucket", kind=ListingKind.OBJECTS, continuation_token="tok/1")
        )

        params = handler.requests[0].url.params
        assert params["list-type"] == "2"
        assert params["continuation-token"] == "tok/1"
        assert "versions" not in params

    def test_virtual_style_request(self):
        handler = RecordingHandler()
        client = make_client(handler, addressing_style="virtual")

        client.fetch_page(ListingRequest(bucket="my-bucket"))

        sent = handler.requests[0]
        assert sent.url.host == "my-bucket.s3.example.com"
        assert sent.url.path == "/"
        assert sent.headers["host"] == "my-bucket.s3.example.com"

    def test_decodes_page(self):
        client = make_client(RecordingHandler())

        page = client.fetch_page(ListingRequest(bucket="my-bucket"))

        assert len(page.records) == 1
        assert isinstance(page.records[0], ObjectVersion)
        assert page.is_truncated is False

    def test_error_response(self):
        """Store errors surface as ApiError."""
        body = b"<Error><Code>AccessDenied</Code><Message>Access Denied</Message></Error>"
        client = make_client(RecordingHandler(httpx.Response(403, content=body)))

        with pytest.raises(ApiError) as exc_info:
            client.fetch_page(ListingRequest(bucket="my-bucket"))

        assert exc_info.value.code == "AccessDenied"
        assert exc_info.value.status == 403

    def test_each_call_signed_at_its_own_time(self):
        """A repeated call is re-signed with the current clock."""
        times = iter([FIXED_TIME, FIXED_TIME + timedelta(seconds=5)])
        handler = RecordingHandler()
        client = make_client(handler, clock=lambda: next(times))
        request = ListingRequest(bucket="my-bucket")

        client.fetch_page(request)
        client.fetch_page(request)

        first, second = handler.requests
        assert first.headers["x-amz-date"] == "20240501T120000Z"
        assert second.headers["x-amz-date"] == "20240501T120005Z"
        assert first.headers["authorization"] != second.headers["authorization"]

    def test_bad_clock_fails_before_sending(self):
        handler = RecordingHandler()
        client = make_client(handler, clock=lambda: datetime(1970, 1, 1, tzinfo=timezone.utc))

        with pytest.raises(ClockError):
            client.fetch_page(ListingRequest(bucket="my-bucket"))

        assert handler.requests == []

    def test_session_token_sent(self):
        handler = RecordingHandler()
        client = make_client(handler, session_token="session")

        client.fetch_page(ListingRequest(bucket="my-bucket"))

        assert handler.requests[0].headers["x-amz-security-token"] == "session"


class TestGetBucketVersioning:
    """Tests for get_bucket_versioning."""

    def test_status_returned(self):
        body = b"<VersioningConfiguration><Status>Suspended</Status></VersioningConfiguration>"
        handler = RecordingHandler(httpx.Response(200, content=body))
        client = make_client(handler)

        assert client.get_bucket_versioning("my-bucket") == "Suspended"
        assert handler.requests[0].url.query == b"versioning="


class TestBuildClient:
    """Tests for build_client."""

    def test_builds_httpx_backed_client(self):
        handler = RecordingHandler()
        client = build_client(make_config(), timeout=5.0, transport=httpx.MockTransport(handler))

        client.fetch_page(ListingRequest(bucket="my-bucket"))
        client.close()

        assert client.transport.timeout == 5.0
        assert len(handler.requests) == 1
