import json
from pathlib import Path

import pytest
from dotenv import load_dotenv

# Load a test-specific environment file so pytest runs are consistent locally and in VS Code
_root = Path(__file__).resolve().parents[1]
_env_test = _root / ".env.test"
if _env_test.exists():
    load_dotenv(dotenv_path=_env_test, override=True)


@pytest.fixture()
def vw_base(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> Path:
    # Point the program at a sandboxed base directory
    base = tmp_path / "project"
    (base / "assets" / "sequences").mkdir(parents=True)
    (base / "assets" / "content").mkdir(parents=True)
    monkeypatch.setenv("VW_BASE_DIR", str(base))
    # Unset overrides to exercise default resolution under base dir
    for k in ("VW_SEQUENCES_DIR", "VW_CONTENT_ROOT", "VW_CONFIG_PATH", "VW_CRASH_TRACE_FILE", "VW_VERBOSE"):
        monkeypatch.delenv(k, raising=False)
    return base


@pytest.fixture()
def write_sequence(vw_base: Path):
    def _write(sequence_id: str, messages: list) -> Path:
        p = vw_base / "assets" / "sequences" / f"{sequence_id}.json"
        p.write_text(json.dumps({"sequenceId": sequence_id, "messages": messages}), encoding="utf-8")
        return p
    return _write


@pytest.fixture()
def write_content(vw_base: Path):
    def _write(rel: str, lines: list) -> Path:
        p = vw_base / "assets" / rel
        p.parent.mkdir(parents=True, exist_ok=True)
        p.write_text("".join(f"{ln}\n" for ln in lines), encoding="utf-8")
        return p
    return _write


@pytest.fixture()
def write_config(vw_base: Path):
    def _write(text: str) -> Path:
        p = vw_base / "tool" / "variants_config.yaml"
        p.parent.mkdir(parents=True, exist_ok=True)
        p.write_text(text, encoding="utf-8")
        return p
    return _write
