"""Tests for the signed HTTP transport."""

import httpx
import pytest

from conftest import API_KEY, API_SECRET, FakeRtm, fail, ok
from rtm_client.exceptions import ServiceError, TransportError
from rtm_client.signing import SIGNATURE_PARAM, sign_params
from rtm_client.transport import MALFORMED_RESPONSE, RtmTransport


class TestBuildQuery:
    """Tests for query construction."""

    def test_base_params(self):
        """Every call carries method, api_key, format and version."""
        transport = RtmTransport(API_KEY, API_SECRET)
        query = transport.build_query("rtm.test.echo")
        assert query["method"] == "rtm.test.echo"
        assert query["api_key"] == API_KEY
        assert query["format"] == "json"
        assert query["v"] == "2"

    def test_signature_covers_params(self):
        """api_sig verifies against the rest of the query."""
        transport = RtmTransport(API_KEY, API_SECRET)
        query = transport.build_query("rtm.lists.getList", {"auth_token": "t"})
        sig = query.pop(SIGNATURE_PARAM)
        assert sig == sign_params(API_SECRET, query)


@pytest.mark.asyncio
class TestCall:
    """Tests for RtmTransport.call."""

    async def test_returns_rsp(self):
        """A successful call returns the rsp payload."""
        fake = FakeRtm()
        fake.on("rtm.test.echo", ok(ping="pong"))
        transport = fake.transport()

        rsp = await transport.call("rtm.test.echo")

        assert rsp == {"stat": "ok", "ping": "pong"}

    async def test_sends_signed_query(self):
        """The request reaching the service is signed."""
        fake = FakeRtm()
        fake.on("rtm.test.echo", ok())
        transport = fake.transport()

        await transport.call("rtm.test.echo", {"foo": "bar"})

        params = fake.params("rtm.test.echo")[0]
        sig = params.pop(SIGNATURE_PARAM)
        assert params["foo"] == "bar"
        assert sig == sign_params(API_SECRET, params)

    async def test_service_error(self):
        """A fail envelope raises ServiceError with code and message."""
        fake = FakeRtm()
        fake.on("rtm.tasks.complete", fail(340, "Task not found"))
        transport = fake.transport()

        with pytest.raises(ServiceError) as exc_info:
            await transport.call("rtm.tasks.complete")

        assert exc_info.value.code == 340
        assert exc_info.value.message == "Task not found"
        assert exc_info.value.method == "rtm.tasks.complete"

    async def test_service_error_not_retried(self):
        """Service rejections are never retried."""
        fake = FakeRtm()
        fake.on("rtm.lists.getList", fail(105, "Service currently unavailable"))
        transport = fake.transport(max_retries=3)

        with pytest.raises(ServiceError):
            await transport.call("rtm.lists.getList")

        assert fake.methods() == ["rtm.lists.getList"]

    async def test_network_error_retried(self):
        """Network failures are retried for idempotent calls, then surfaced."""
        fake = FakeRtm()
        fake.on("rtm.lists.getList", httpx.ConnectError("connection refused"))
        transport = fake.transport(max_retries=2)

        with pytest.raises(TransportError) as exc_info:
            await transport.call("rtm.lists.getList")

        assert len(fake.calls) == 3
        assert exc_info.value.attempts == 3

    async def test_retry_then_success(self):
        """A transient failure followed by success returns the result."""
        fake = FakeRtm()
        fake.on(
            "rtm.lists.getList",
            httpx.ConnectError("reset"),
            ok(lists={"list": []}),
        )
        transport = fake.transport(max_retries=2)

        rsp = await transport.call("rtm.lists.getList")

        assert rsp["lists"] == {"list": []}
        assert len(fake.calls) == 2

    async def test_non_idempotent_not_retried(self):
        """Non-idempotent calls get exactly one attempt."""
        fake = FakeRtm()
        fake.on("rtm.tasks.add", httpx.ConnectError("connection refused"))
        transport = fake.transport(max_retries=2)

        with pytest.raises(TransportError):
            await transport.call("rtm.tasks.add", idempotent=False)

        assert len(fake.calls) == 1

    async def test_timeout(self):
        """A timeout raises TransportError mentioning the timeout."""
        fake = FakeRtm()
        fake.on("rtm.lists.getList", httpx.ReadTimeout("too slow"))
        transport = fake.transport(max_retries=0, timeout=1.5)

        with pytest.raises(TransportError) as exc_info:
            await transport.call("rtm.lists.getList")

        assert "timed out" in exc_info.value.message
        assert exc_info.value.context["timeout_seconds"] == 1.5

    async def test_server_error_is_transport_error(self):
        """HTTP 5xx counts as a transport failure and is retried."""
        fake = FakeRtm()
        fake.on("rtm.lists.getList", lambda params: httpx.Response(503))
        transport = fake.transport(max_retries=1)

        with pytest.raises(TransportError):
            await transport.call("rtm.lists.getList")

        assert len(fake.calls) == 2

    async def test_client_error_status(self):
        """Other non-200 statuses are service errors carrying the status."""
        fake = FakeRtm()
        fake.on("rtm.lists.getList", lambda params: httpx.Response(404))
        transport = fake.transport()

        with pytest.raises(ServiceError) as exc_info:
            await transport.call("rtm.lists.getList")

        assert exc_info.value.code == 404

    async def test_malformed_json(self):
        """An unparseable body is a malformed-response service error."""
        fake = FakeRtm()
        fake.on("rtm.lists.getList", lambda params: httpx.Response(200, content=b"<rsp>"))
        transport = fake.transport()

        with pytest.raises(ServiceError) as exc_info:
            await transport.call("rtm.lists.getList")

        assert exc_info.value.code == MALFORMED_RESPONSE

    async def test_missing_envelope(self):
        """A JSON body without rsp is a malformed-response service error."""
        fake = FakeRtm()
        fake.on("rtm.lists.getList", lambda params: httpx.Response(200, json={"ok": True}))
        transport = fake.transport()

        with pytest.raises(ServiceError) as exc_info:
            await transport.call("rtm.lists.getList")

        assert exc_info.value.code == MALFORMED_RESPONSE

    async def test_error_detail_not_an_object(self):
        """A fail response whose err is not an object is still a service error."""
        fake = FakeRtm()
        fake.on(
            "rtm.lists.getList",
            lambda params: httpx.Response(200, json={"rsp": {"stat": "fail", "err": "boom"}}),
        )
        transport = fake.transport()

        with pytest.raises(ServiceError) as exc_info:
            await transport.call("rtm.lists.getList")

        assert exc_info.value.code == MALFORMED_RESPONSE
        assert exc_info.value.message == "Unknown service error"


@pytest.mark.asyncio
class TestClientLifecycle:
    """Tests for HTTP client ownership."""

    async def test_supplied_client_not_closed(self):
        """aclose leaves a caller-supplied client open."""
        http_client = httpx.AsyncClient(transport=httpx.MockTransport(lambda r: httpx.Response(200)))
        transport = RtmTransport(API_KEY, API_SECRET, client=http_client)

        await transport.aclose()

        assert not http_client.is_closed
        await http_client.aclose()

    async def test_owned_client_closed(self):
        """aclose closes a client the transport created itself."""
        transport = RtmTransport(API_KEY, API_SECRET)
        http_client = transport._get_client()

        await transport.aclose()

        assert http_client.is_closed
