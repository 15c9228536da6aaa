import asyncio
import json

import httpx
import pytest
from fastapi.testclient import TestClient

from localinfer.chat_proxy.app import app
from localinfer.chat_proxy.config import ProxyConfig
from localinfer.chat_proxy.errors import ProxyError
from localinfer.chat_proxy.forwarder import CompletionForwarder
from localinfer.chat_proxy.logging_utils import RequestLog
from localinfer.chat_proxy.metrics import MetricsAggregator
from localinfer.model_registry.models import ModelDescriptor

SSE_CHUNKS = [
    b'data: {"choices":[{"delta":{"content":"Hel"}}]}\n\n',
    b'data: {"choices":[{"delta":{"content":"lo"}}]}\n\n',
    b"data: [DONE]\n\n",
]


def _forwarder(tmp_path, data_root, handler):
    cfg = ProxyConfig(data_dir=str(data_root))
    return CompletionForwarder(
        cfg,
        MetricsAggregator(),
        RequestLog(str(tmp_path / "unit.jsonl")),
        transport=httpx.MockTransport(handler),
    )


def test_event_stream_is_relayed_byte_for_byte(fake_backend):
    fake_backend["chunks"] = SSE_CHUNKS

    client = TestClient(app)
    with client.stream(
        "POST",
        "/v1/chat/completions",
        json={
            "model": "model1",
            "messages": [{"role": "user", "content": "Hi"}],
            "stream": True,
        },
    ) as r:
        assert r.status_code == 200
        body = b"".join(r.iter_bytes())

    assert body == b"".join(SSE_CHUNKS)
    assert fake_backend["stream"].yielded == len(SSE_CHUNKS)
    assert fake_backend["stream"].closed


def test_request_log_records_relay(fake_backend, proxy_env):
    fake_backend["chunks"] = SSE_CHUNKS
    client = TestClient(app)
    r = client.post(
        "/v1/chat/completions",
        json={"model": "model1", "messages": [{"role": "user", "content": "Hi"}]},
    )
    assert r.status_code == 200

    with open(proxy_env._forwarder.request_log.path, encoding="utf-8") as fh:
        records = [json.loads(line) for line in fh if line.strip()]
    assert records[-1]["model"] == "model1"
    assert records[-1]["engine"] == "nitro"
    assert records[-1]["status"] == 200
    assert records[-1]["bytes_out"] == sum(len(c) for c in SSE_CHUNKS)


def test_build_backend_payload_does_not_mutate_input(tmp_path, data_root):
    forwarder = _forwarder(tmp_path, data_root, lambda request: httpx.Response(200))
    inbound = {"model": "model1", "messages": []}

    local = forwarder.build_backend_payload(
        inbound, ModelDescriptor(id="model1", engine="nitro")
    )
    remote = forwarder.build_backend_payload(inbound, ModelDescriptor(id="model1"))

    assert local == {"model": "model1", "messages": [], "engine": "cortex.llamacpp"}
    assert remote == inbound
    assert remote is not inbound
    assert "engine" not in inbound
    asyncio.run(forwarder.aclose())


def test_handle_chat_unknown_model_makes_no_call(tmp_path, data_root):
    calls = []

    def handler(request):
        calls.append(request)
        return httpx.Response(200)

    forwarder = _forwarder(tmp_path, data_root, handler)

    async def run():
        try:
            await forwarder.handle_chat({"model": "missing", "messages": []})
        finally:
            await forwarder.aclose()

    with pytest.raises(ProxyError) as excinfo:
        asyncio.run(run())

    assert excinfo.value.status_code == 404
    assert excinfo.value.detail["error"]["message"] == "The model missing does not exist"
    assert calls == []


def test_handle_chat_streams_mock_transport(tmp_path, data_root):
    seen = {}

    def handler(request):
        seen["body"] = json.loads(request.content)
        seen["url"] = str(request.url)
        return httpx.Response(200, content=b"".join(SSE_CHUNKS))

    forwarder = _forwarder(tmp_path, data_root, handler)

    async def run():
        result = await forwarder.handle_chat(
            {"model": "model2", "messages": [{"role": "user", "content": "Hello"}]}
        )
        chunks = [chunk async for chunk in result.body]
        await forwarder.aclose()
        return result, chunks

    result, chunks = asyncio.run(run())

    assert result.status_code == 200
    assert result.headers == {
        "Content-Type": "application/json",
        "Cache-Control": "no-cache",
        "Connection": "keep-alive",
        "Access-Control-Allow-Origin": "*",
    }
    assert b"".join(chunks) == b"".join(SSE_CHUNKS)
    assert seen["body"] == {
        "model": "model2",
        "messages": [{"role": "user", "content": "Hello"}],
    }
    assert seen["url"].endswith("/inferences/server/chat_completion")
    summary = forwarder.metrics.summary()
    assert summary["rolling"]["count"] == 1
    assert summary["requests_by_engine"]["openai"]["total_requests"] == 1


def test_caller_disconnect_stops_relay_and_releases_backend(fake_backend, proxy_env):
    fake_backend["chunks"] = SSE_CHUNKS

    async def run():
        result = await proxy_env._forwarder.handle_chat(
            {"model": "model1", "messages": [{"role": "user", "content": "Hi"}]}
        )
        first = await result.body.__anext__()
        # Nothing is pulled from the backend ahead of the caller
        pulled_before_close = fake_backend["stream"].yielded
        await result.body.aclose()
        return first, pulled_before_close

    first, pulled_before_close = asyncio.run(run())

    assert first == SSE_CHUNKS[0]
    assert pulled_before_close == 1
    assert fake_backend["stream"].yielded == 1
    assert fake_backend["stream"].closed
