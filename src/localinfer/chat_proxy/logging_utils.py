from __future__ import annotations

import json
import time
from pathlib import Path
from typing import Any, Dict, Union


class RequestLog:
    """One JSON object per relayed request, appended to ``path``.

    When the active file grows past ``max_bytes`` it is renamed with a
    timestamp suffix and only the newest ``keep`` rotated files survive.
    Filesystem problems are ignored: a request never fails because of its log.
    """

    def __init__(
        self, path: Union[str, Path], max_bytes: int = 25_000_000, keep: int = 5
    ):
        self.path = Path(path)
        self.max_bytes = max_bytes
        self.keep = keep
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
        except OSError:
            pass

    def rotated_files(self) -> list[Path]:
        return sorted(self.path.parent.glob(f"{self.path.name}.*"))

    def _rotate(self) -> None:
        try:
            if not self.path.is_file() or self.path.stat().st_size <= self.max_bytes:
                return
            stamp = time.strftime("%Y%m%d-%H%M%S")
            self.path.rename(self.path.with_name(f"{self.path.name}.{stamp}"))
            for stale in self.rotated_files()[: -self.keep or None]:
                stale.unlink()
        except OSError:
            pass

    def log(self, record: Dict[str, Any]) -> None:
        self._rotate()
        line = json.dumps(record, ensure_ascii=False)
        try:
            with self.path.open("a", encoding="utf-8") as fh:
                fh.write(line + "\n")
        except OSError:
            pass
