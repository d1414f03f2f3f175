import json

import pytest

from variantwriter.config import PipelineConfig, default_config
from variantwriter.context import ConfigStructureError, InvalidConfigError


def test_sample_config_matches_defaults():
    cfg = default_config()
    assert cfg.provider.name == "generic-json"
    assert cfg.provider.mock is True
    assert cfg.gen.num_variants == 8
    assert cfg.gen.dedupe_threshold == 0.82
    assert cfg.context.history_bubbles == 4
    assert cfg.style.tone == ["friendly", "concise", "supportive"]
    assert cfg.io.archive_dir == "tool/ai_archive"
    assert cfg.rate_limit.retry_backoff_ms == 1000
    assert cfg.safety.pii_regexes == []
    assert (cfg.traversal.max_depth, cfg.traversal.max_paths) == (200, 5000)
    assert cfg.mock_generation


def test_partial_config_keeps_other_defaults():
    cfg = PipelineConfig.from_text("gen:\n  num_variants: 3\n  temperature: 1\n")
    assert cfg.gen.num_variants == 3
    assert cfg.gen.temperature == 1.0
    assert cfg.gen.max_chars_per_bubble == 90
    assert cfg.provider.api_key_env == "LLM_API_KEY"
    assert cfg.io.dry_run is True


def test_json_config_text():
    cfg = PipelineConfig.from_text(json.dumps({"io": {"dry_run": False}, "provider": {"mock": False}}))
    assert not cfg.mock_generation


@pytest.mark.parametrize("text", [
    "gen:\n  num_variants: 2.5\n",
    "gen:\n  temperature: hot\n",
    "io:\n  dry_run: maybe\n",
    "style:\n  tone: friendly\n",
    "gen: 3\n",
])
def test_bad_values_rejected(text):
    with pytest.raises(InvalidConfigError):
        PipelineConfig.from_text(text)


def test_structure_error_carries_source():
    with pytest.raises(ConfigStructureError) as ei:
        PipelineConfig.from_text("gen:\n  num_variants: 2\n    extra: 1\n")
    assert "<string>" in str(ei.value)


def test_load_creates_missing_sample(vw_base, capsys):
    p = vw_base / "tool" / "variants_config.yaml"
    cfg = PipelineConfig.load(p)
    assert p.exists()
    assert cfg == default_config()
    assert "Using defaults and creating a sample" in capsys.readouterr().out


def test_to_dict_round_trips_through_json():
    d = default_config().to_dict()
    assert json.loads(json.dumps(d))["gen"]["num_variants"] == 8


def test_bad_pii_pattern_rejected():
    with pytest.raises(InvalidConfigError) as ei:
        PipelineConfig.from_tree({"safety": {"pii_regexes": ["[unclosed"]}})
    assert "pii_regexes" in str(ei.value)
