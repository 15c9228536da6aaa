import json
import sys
from pathlib import Path

import pytest

ROOT = Path(__file__).resolve().parent.parent
SRC = ROOT / "src"
if str(SRC) not in sys.path:
    sys.path.insert(0, str(SRC))


SAMPLE_MODELS = [
    {
        "id": "model1",
        "name": "Test Model 1",
        "engine": "nitro",
        "delete": {"object": "test"},
    },
    {"id": "model2", "name": "Test Model 2", "engine": "openai"},
]


def write_model(models_dir: Path, entry: str, metadata, file_name: str = "model.json"):
    """Create ``models_dir/entry/file_name`` holding ``metadata``.

    Strings are written verbatim so tests can plant malformed files.
    """
    target = models_dir / entry
    target.mkdir(parents=True, exist_ok=True)
    text = metadata if isinstance(metadata, str) else json.dumps(metadata)
    (target / file_name).write_text(text, encoding="utf-8")
    return target / file_name


@pytest.fixture
def data_root(tmp_path, monkeypatch):
    """Isolated data root with the two sample models and a stray OS file.

    Exported through LOCALINFER_DATA_DIR so code resolving the root from the
    environment sees the same directory.
    """
    root = tmp_path / "data"
    models_dir = root / "models"
    models_dir.mkdir(parents=True)
    for metadata in SAMPLE_MODELS:
        write_model(models_dir, metadata["id"], metadata)
    (models_dir / ".DS_Store").write_bytes(b"\x00\x00\x00\x01Bud1\x00\x00")
    monkeypatch.setenv("LOCALINFER_DATA_DIR", str(root))
    yield root


@pytest.fixture
def model_writer():
    return write_model


@pytest.fixture
def sample_models():
    return [dict(m) for m in SAMPLE_MODELS]
