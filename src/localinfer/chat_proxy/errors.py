from __future__ import annotations

from fastapi import HTTPException


class ProxyError(HTTPException):
    """HTTP error carrying an OpenAI-style ``{"error": {...}}`` body."""

    def __init__(
        self,
        status_code: int,
        err_type: str,
        message: str,
        code: str | None = None,
        param: str | None = None,
    ):
        payload = {
            "error": {
                "message": message,
                "type": err_type,
                "param": param,
                "code": code,
            }
        }
        super().__init__(status_code=status_code, detail=payload)


def err_model_not_found(model: str) -> ProxyError:
    return ProxyError(
        404,
        "invalid_request_error",
        f"The model {model} does not exist",
        code="model_not_found",
    )


def err_backend_unavailable(url: str) -> ProxyError:
    return ProxyError(
        502,
        "api_error",
        f"Inference backend unavailable at {url}",
        code="backend_unavailable",
    )


def err_invalid_request(message: str) -> ProxyError:
    return ProxyError(400, "invalid_request_error", message, code="invalid_json")
