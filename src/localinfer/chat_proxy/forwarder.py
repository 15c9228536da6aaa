from __future__ import annotations

import json
import logging
import time
from dataclasses import dataclass, field
from typing import Any, AsyncIterator, Dict, Optional

import httpx

from ..model_registry.models import ModelDescriptor
from ..model_registry.registry import aload_models, find_model
from .config import ProxyConfig
from .errors import err_backend_unavailable, err_invalid_request, err_model_not_found
from .logging_utils import RequestLog
from .metrics import MetricSample, MetricsAggregator

logger = logging.getLogger(__name__)

RELAY_HEADERS: Dict[str, str] = {
    "Content-Type": "application/json",
    "Cache-Control": "no-cache",
    "Connection": "keep-alive",
    "Access-Control-Allow-Origin": "*",
}


@dataclass
class ProxiedResponse:
    status_code: int
    body: AsyncIterator[bytes]
    headers: Dict[str, str] = field(default_factory=lambda: dict(RELAY_HEADERS))


def _encode_payload(payload: Dict[str, Any]) -> bytes:
    return json.dumps(payload, ensure_ascii=False, separators=(",", ":")).encode(
        "utf-8"
    )


def _backend_timeout(cfg: ProxyConfig) -> httpx.Timeout:
    connect = cfg.backend_connect_timeout_ms / 1000 or None
    read = cfg.backend_read_timeout_ms / 1000 or None
    return httpx.Timeout(None, connect=connect, read=read)


class CompletionForwarder:
    """Validates chat requests against the model catalog and relays them to
    the local inference runtime.

    Each call loads its own catalog snapshot, so the forwarder holds no
    per-request state; the shared httpx client only pools connections.
    """

    def __init__(
        self,
        cfg: ProxyConfig,
        metrics: MetricsAggregator,
        request_log: RequestLog,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.cfg = cfg
        self.metrics = metrics
        self.request_log = request_log
        self.client = httpx.AsyncClient(
            timeout=_backend_timeout(cfg), transport=transport
        )

    async def load_catalog(self) -> list[ModelDescriptor]:
        return await aload_models(self.cfg.registry_configuration(), self.cfg.data_dir)

    def build_backend_payload(
        self, payload: Dict[str, Any], descriptor: ModelDescriptor
    ) -> Dict[str, Any]:
        """Return a shallow copy of ``payload`` shaped for the model's engine."""
        outbound = dict(payload)
        if descriptor.engine == self.cfg.local_engine:
            outbound["engine"] = self.cfg.local_engine_backend
        return outbound

    async def handle_chat(self, payload: Any) -> ProxiedResponse:
        if not isinstance(payload, dict):
            raise err_invalid_request("Request body must be a JSON object")
        model = payload.get("model")
        descriptor = find_model(await self.load_catalog(), model)
        if descriptor is None:
            logger.info("[forwarder] Rejecting request for unknown model %r", model)
            raise err_model_not_found(str(model))

        outbound = self.build_backend_payload(payload, descriptor)
        url = self.cfg.chat_completion_url
        request = self.client.build_request(
            "POST",
            url,
            content=_encode_payload(outbound),
            headers={"Content-Type": "application/json"},
        )
        engine = "default" if descriptor.engine is None else str(descriptor.engine)
        started_at = time.time()
        try:
            resp = await self.client.send(request, stream=True)
        except httpx.TransportError as exc:
            logger.error("[forwarder] Backend %s unreachable: %s", url, exc)
            self._record(model, engine, 502, started_at, None, 0)
            raise err_backend_unavailable(url) from exc

        if resp.is_success:
            status = 200
        else:
            status = resp.status_code
            logger.warning(
                "[forwarder] Backend returned %d for model %r; relaying as-is",
                status,
                model,
            )
        return ProxiedResponse(
            status_code=status,
            body=self._relay(resp, model, engine, status, started_at),
        )

    async def _relay(
        self,
        resp: httpx.Response,
        model: str,
        engine: str,
        status: int,
        started_at: float,
    ) -> AsyncIterator[bytes]:
        # One chunk in flight at a time: the next read happens only after the
        # caller side has accepted the previous chunk.
        first_byte_at: Optional[float] = None
        bytes_out = 0
        try:
            async for chunk in resp.aiter_bytes():
                if first_byte_at is None:
                    first_byte_at = time.time()
                bytes_out += len(chunk)
                yield chunk
        finally:
            await resp.aclose()
            self._record(model, engine, status, started_at, first_byte_at, bytes_out)

    def _record(
        self,
        model: Any,
        engine: str,
        status: int,
        started_at: float,
        first_byte_at: Optional[float],
        bytes_out: int,
    ) -> None:
        now = time.time()
        ttfb_ms = (first_byte_at - started_at) * 1000 if first_byte_at else None
        self.metrics.add(
            MetricSample(
                ts=now,
                model=str(model),
                engine=engine,
                status=status,
                ttfb_ms=ttfb_ms,
                bytes_out=bytes_out,
                duration_ms=(now - started_at) * 1000,
            )
        )
        self.request_log.log(
            {
                "ts": time.strftime("%Y-%m-%dT%H:%M:%S", time.gmtime(now)),
                "model": model,
                "engine": engine,
                "status": status,
                "bytes_out": bytes_out,
                "stream": True,
            }
        )

    async def aclose(self) -> None:
        await self.client.aclose()
