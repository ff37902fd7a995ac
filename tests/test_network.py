"""NetworkClient -- retry bound, timeouts, error codes, de-duplication, batching."""

import asyncio
import json

import httpx
import pytest

from persona_council.errors import NetworkError
from persona_council.utils.network import NetworkClient

from conftest import RecordingTransport


def _client(handler, **kwargs) -> tuple[NetworkClient, RecordingTransport]:
    transport = RecordingTransport(handler)
    kwargs.setdefault("retry_delay", 0.0)
    return NetworkClient(transport=transport, **kwargs), transport


class TestRetry:
    @pytest.mark.asyncio
    async def test_attempts_are_retry_attempts_plus_one(self):
        """A permanently failing URL is tried exactly N+1 times."""
        client, transport = _client(lambda r: httpx.Response(503), retry_attempts=2)
        with pytest.raises(NetworkError) as exc:
            await client.get("https://personas.test/list.json")
        assert len(transport.requests) == 3
        assert exc.value.code == NetworkError.HTTP_ERROR
        assert exc.value.status == 503
        assert exc.value.url == "https://personas.test/list.json"

    @pytest.mark.asyncio
    async def test_zero_retries_means_one_attempt(self):
        client, transport = _client(lambda r: httpx.Response(500), retry_attempts=0)
        with pytest.raises(NetworkError):
            await client.get("https://personas.test/list.json")
        assert len(transport.requests) == 1

    @pytest.mark.asyncio
    async def test_recovers_after_transient_failure(self):
        responses = [httpx.Response(502), httpx.Response(200, json=[{"id": "a"}])]
        client, transport = _client(lambda r: responses.pop(0), retry_attempts=3)
        result = await client.get("https://personas.test/list.json")
        assert result.data == [{"id": "a"}]
        assert result.status == 200
        assert len(transport.requests) == 2

    @pytest.mark.asyncio
    async def test_per_call_overrides(self):
        client, transport = _client(lambda r: httpx.Response(500), retry_attempts=5)
        with pytest.raises(NetworkError):
            await client.get("https://personas.test/x", retry_attempts=1)
        assert len(transport.requests) == 2

    @pytest.mark.asyncio
    async def test_backoff_doubles_and_caps(self, monkeypatch):
        """Waits follow delay * 2**attempt and never exceed 30 s."""
        delays = []
        real_sleep = asyncio.sleep

        async def fake_sleep(seconds):
            delays.append(seconds)
            await real_sleep(0)

        monkeypatch.setattr(asyncio, "sleep", fake_sleep)
        client, transport = _client(
            lambda r: httpx.Response(503), retry_attempts=6, retry_delay=4.0
        )
        with pytest.raises(NetworkError):
            await client.get("https://personas.test/list.json")
        assert delays == [4.0, 8.0, 16.0, 30.0, 30.0, 30.0]
        assert len(transport.requests) == 7


class TestErrorCodes:
    @pytest.mark.asyncio
    async def test_timeout_code(self):
        """An attempt that outlives the timeout is a TIMEOUT error."""

        async def slow(request):
            await asyncio.sleep(1.0)
            return httpx.Response(200, json=[])

        client, _ = _client(slow, timeout=0.05, retry_attempts=0)
        with pytest.raises(NetworkError) as exc:
            await client.get("https://personas.test/slow")
        assert exc.value.code == NetworkError.TIMEOUT

    @pytest.mark.asyncio
    async def test_connection_failure_code(self):
        def refuse(request):
            raise httpx.ConnectError("connection refused", request=request)

        client, _ = _client(refuse, retry_attempts=0)
        with pytest.raises(NetworkError) as exc:
            await client.get("https://personas.test/down")
        assert exc.value.code == NetworkError.NETWORK_ERROR
        assert exc.value.status is None

    @pytest.mark.asyncio
    async def test_invalid_json_is_network_error(self):
        client, _ = _client(lambda r: httpx.Response(200, content=b"<html>"), retry_attempts=0)
        with pytest.raises(NetworkError) as exc:
            await client.get("https://personas.test/html")
        assert exc.value.code == NetworkError.NETWORK_ERROR

    @pytest.mark.asyncio
    async def test_malformed_url_is_network_error(self):
        """A URL httpx cannot parse fails as NETWORK_ERROR, after the usual retries."""
        client, transport = _client(lambda r: httpx.Response(200, json=[]), retry_attempts=1)
        with pytest.raises(NetworkError) as exc:
            await client.get("http://[::1")
        assert exc.value.code == NetworkError.NETWORK_ERROR
        assert exc.value.url == "http://[::1"
        assert transport.requests == []

    @pytest.mark.asyncio
    async def test_unserializable_body_is_network_error(self):
        client, transport = _client(lambda r: httpx.Response(200, json={}), retry_attempts=0)
        with pytest.raises(NetworkError) as exc:
            await client.post("https://personas.test/echo", body={"when": object()})
        assert exc.value.code == NetworkError.NETWORK_ERROR
        assert transport.requests == []

    @pytest.mark.asyncio
    async def test_empty_body_is_none(self):
        client, _ = _client(lambda r: httpx.Response(204))
        result = await client.get("https://personas.test/empty")
        assert result.data is None

    def test_error_dict_includes_code(self):
        error = NetworkError("boom", code=NetworkError.HTTP_ERROR, status=500, url="u")
        payload = error.to_dict()
        assert payload["kind"] == "network"
        assert payload["code"] == NetworkError.HTTP_ERROR
        assert payload["status"] == 500


class TestDeduplication:
    @pytest.mark.asyncio
    async def test_identical_requests_share_one_call(self):
        """Two concurrent identical GETs produce one HTTP request."""

        async def slow(request):
            await asyncio.sleep(0.05)
            return httpx.Response(200, json={"ok": True})

        client, transport = _client(slow)
        first, second = await asyncio.gather(
            client.get("https://personas.test/a"),
            client.get("https://personas.test/a"),
        )
        assert first.data == second.data == {"ok": True}
        assert len(transport.requests) == 1
        assert client.pending_count == 0

    @pytest.mark.asyncio
    async def test_identical_requests_share_one_failure(self):
        """Concurrent callers on a failing URL get the same error from one retry series."""

        async def slow_failure(request):
            await asyncio.sleep(0.01)
            return httpx.Response(503)

        client, transport = _client(slow_failure, retry_attempts=2)
        first, second = await asyncio.gather(
            client.get("https://personas.test/down"),
            client.get("https://personas.test/down"),
            return_exceptions=True,
        )
        assert isinstance(first, NetworkError)
        assert first is second
        assert first.status == 503
        assert len(transport.requests) == 3
        assert client.pending_count == 0

    @pytest.mark.asyncio
    async def test_different_bodies_are_separate(self):
        client, transport = _client(
            lambda r: httpx.Response(200, json=json.loads(r.content))
        )
        results = await asyncio.gather(
            client.post("https://personas.test/echo", body={"n": 1}),
            client.post("https://personas.test/echo", body={"n": 2}),
        )
        assert [r.data for r in results] == [{"n": 1}, {"n": 2}]
        assert len(transport.requests) == 2

    @pytest.mark.asyncio
    async def test_cancelling_last_waiter_cancels_request(self):
        started = asyncio.Event()

        async def hang(request):
            started.set()
            await asyncio.sleep(10)
            return httpx.Response(200)

        client, _ = _client(hang)
        caller = asyncio.ensure_future(client.get("https://personas.test/hang"))
        await started.wait()
        caller.cancel()
        with pytest.raises(asyncio.CancelledError):
            await caller
        for _ in range(5):
            await asyncio.sleep(0)
        assert client.pending_count == 0

    @pytest.mark.asyncio
    async def test_caller_after_cancellation_gets_fresh_request(self):
        """A caller arriving just after the last waiter left is not cancelled with it."""
        started = asyncio.Event()
        calls = []

        async def hang_then_answer(request):
            calls.append(request)
            if len(calls) == 1:
                started.set()
                await asyncio.sleep(10)
            return httpx.Response(200, json={"fresh": True})

        client, _ = _client(hang_then_answer)
        first = asyncio.ensure_future(client.get("https://personas.test/hang"))
        await started.wait()
        first.cancel()
        second = asyncio.ensure_future(client.get("https://personas.test/hang"))

        result = await second
        assert result.data == {"fresh": True}
        assert len(calls) == 2
        with pytest.raises(asyncio.CancelledError):
            await first

    @pytest.mark.asyncio
    async def test_cancel_all(self):
        started = asyncio.Event()

        async def hang(request):
            started.set()
            await asyncio.sleep(10)
            return httpx.Response(200)

        client, _ = _client(hang)
        caller = asyncio.ensure_future(client.get("https://personas.test/hang"))
        await started.wait()
        assert client.cancel_all() == 1
        with pytest.raises(asyncio.CancelledError):
            await caller


class TestBatchAndHealth:
    @pytest.mark.asyncio
    async def test_batch_returns_errors_as_values(self):
        def handler(request):
            if request.url.path == "/bad":
                return httpx.Response(500)
            return httpx.Response(200, json={"path": request.url.path})

        client, _ = _client(handler, retry_attempts=0)
        results = await client.batch_request(
            ["https://personas.test/a", "https://personas.test/bad", "https://personas.test/b"],
            concurrency=2,
        )
        assert results[0].data == {"path": "/a"}
        assert isinstance(results[1], NetworkError)
        assert results[2].data == {"path": "/b"}

    @pytest.mark.asyncio
    async def test_batch_survives_malformed_url(self):
        client, _ = _client(lambda r: httpx.Response(200, json={"ok": True}), retry_attempts=0)
        results = await client.batch_request(["http://[::1", "https://personas.test/a"])
        assert isinstance(results[0], NetworkError)
        assert results[1].data == {"ok": True}

    @pytest.mark.asyncio
    async def test_health_check(self):
        client, _ = _client(
            lambda r: httpx.Response(200 if r.url.path == "/up" else 503)
        )
        assert await client.health_check("https://personas.test/up") is True
        assert await client.health_check("https://personas.test/down") is False
