from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

from ..model_registry.models import RegistryConfiguration


@dataclass
class ProxyConfig:
    host: str = "127.0.0.1"
    port: int = 1337
    data_dir: Optional[str] = None
    models_dir_name: str = "models"
    metadata_file_name: str = "model.json"
    inference_base_url: str = "http://127.0.0.1:3928"
    chat_completion_path: str = "/inferences/server/chat_completion"
    # Descriptors tagged with local_engine get engine=local_engine_backend injected
    local_engine: str = "nitro"
    local_engine_backend: str = "cortex.llamacpp"
    backend_connect_timeout_ms: int = 10_000
    backend_read_timeout_ms: int = 0  # 0 = wait indefinitely
    enable_metrics: bool = False
    log_path: str = "logs/chat_proxy.jsonl"
    max_log_bytes: int = 25_000_000
    config_file_path: Optional[str] = None

    @property
    def chat_completion_url(self) -> str:
        return self.inference_base_url.rstrip("/") + self.chat_completion_path

    def registry_configuration(self) -> RegistryConfiguration:
        return RegistryConfiguration(
            dir_name=self.models_dir_name,
            metadata_file_name=self.metadata_file_name,
            extras={"delete": {"object": "model"}},
        )

    @classmethod
    def load(cls) -> "ProxyConfig":
        from .config_loader import load_proxy_config

        return load_proxy_config()
