import httpx
import pytest

from localinfer.chat_proxy import app as app_module
from localinfer.chat_proxy import forwarder as forwarder_module
from localinfer.chat_proxy.logging_utils import RequestLog


@pytest.fixture(autouse=True)
def proxy_env(data_root, tmp_path, monkeypatch):
    """Point the module-level app at the sample data root and a scratch log."""
    monkeypatch.setattr(app_module._cfg, "data_dir", str(data_root))
    monkeypatch.setattr(
        app_module._forwarder,
        "request_log",
        RequestLog(str(tmp_path / "logs" / "requests.jsonl")),
    )
    yield app_module


class FakeBackendStream(httpx.AsyncByteStream):
    def __init__(self, chunks):
        self.chunks = list(chunks)
        self.yielded = 0
        self.closed = False

    async def __aiter__(self):
        for chunk in self.chunks:
            self.yielded += 1
            yield chunk

    async def aclose(self):
        self.closed = True


@pytest.fixture
def fake_backend(monkeypatch):
    """Replace network I/O with a canned backend response.

    Returns a dict that records every outbound request; set ``status`` and
    ``chunks`` on it before issuing the call to shape the reply.
    """
    state = {"status": 200, "chunks": [b'{"success":true}'], "requests": []}

    async def fake_send(self, request, *, stream=False, **kwargs):
        state["requests"].append(
            {
                "method": request.method,
                "url": str(request.url),
                "content_type": request.headers.get("Content-Type"),
                "body": request.content,
                "stream": stream,
            }
        )
        backend_stream = FakeBackendStream(state["chunks"])
        state["stream"] = backend_stream
        return httpx.Response(state["status"], stream=backend_stream, request=request)

    monkeypatch.setattr(forwarder_module.httpx.AsyncClient, "send", fake_send)
    return state
