from __future__ import annotations

import logging
from dataclasses import asdict

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse, StreamingResponse

from ..logging_utils import configure_logging
from ..model_registry.registry import find_model
from .config import ProxyConfig
from .config_loader import list_env_overrides, load_file_config
from .errors import ProxyError, err_invalid_request, err_model_not_found
from .forwarder import CompletionForwarder
from .logging_utils import RequestLog
from .metrics import MetricsAggregator

logger = logging.getLogger(__name__)

_cfg = ProxyConfig.load()
_metrics = MetricsAggregator()
_request_log = RequestLog(_cfg.log_path, _cfg.max_log_bytes)
_forwarder = CompletionForwarder(_cfg, _metrics, _request_log)

CONFIG_PRECEDENCE = [
    "Environment variables (LOCALINFER_PROXY_*)",
    "Config file (configs/localinfer.toml)",
    "Built-in defaults",
]

app = FastAPI(title="localinfer Chat Proxy", version="0.1")


def _error_response(exc: ProxyError) -> JSONResponse:
    return JSONResponse(status_code=exc.status_code, content=exc.detail)


@app.on_event("startup")
async def _startup():  # pragma: no cover
    if _cfg.host != "127.0.0.1":
        logger.warning(
            "[app] Listening on %s without authentication; the proxy trusts every caller.",
            _cfg.host,
        )
    logger.info(
        "[app] Relaying chat completions to %s", _cfg.chat_completion_url
    )


@app.on_event("shutdown")
async def _shutdown():  # pragma: no cover
    await _forwarder.aclose()


@app.get("/v1/models")
async def list_models_api():
    models = await _forwarder.load_catalog()
    return {"object": "list", "data": [m.to_dict() for m in models]}


@app.get("/v1/models/{model_id}")
async def retrieve_model_api(model_id: str):
    descriptor = find_model(await _forwarder.load_catalog(), model_id)
    if descriptor is None:
        return _error_response(err_model_not_found(model_id))
    return descriptor.to_dict()


@app.post("/v1/chat/completions")
async def chat_completions(req: Request):
    try:
        payload = await req.json()
    except ValueError:
        return _error_response(err_invalid_request("Request body is not valid JSON"))
    try:
        result = await _forwarder.handle_chat(payload)
    except ProxyError as exc:
        return _error_response(exc)
    return StreamingResponse(
        result.body, status_code=result.status_code, headers=result.headers
    )


@app.get("/v1/metrics")
async def metrics_api():
    if not _cfg.enable_metrics:
        return JSONResponse(
            status_code=404,
            content={
                "error": {
                    "message": "Metrics disabled",
                    "type": "invalid_request_error",
                    "param": None,
                    "code": "disabled",
                }
            },
        )
    return _metrics.summary()


@app.get("/v1/config")
async def read_config():
    runtime = asdict(_cfg)
    config_path = runtime.pop("config_file_path", None)
    return {
        "runtime": runtime,
        "file": load_file_config(),
        "config_file_path": config_path,
        "env_overrides": list_env_overrides(),
        "precedence": CONFIG_PRECEDENCE,
    }


@app.get("/v1/health")
async def health():
    return {"status": "ok", "uptime_seconds": _metrics.summary().get("uptime_seconds")}


def main(host: str | None = None, port: int | None = None):
    import uvicorn

    configure_logging("chat_proxy")

    uvicorn.run(app, host=host or _cfg.host, port=port or _cfg.port)


if __name__ == "__main__":  # pragma: no cover
    main()
