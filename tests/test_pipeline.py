import json
from pathlib import Path

import pytest

from variantwriter.config import PipelineConfig
from variantwriter.context import ContentKeyError, GenerationError, RunContext, TargetError
from variantwriter.env import get_content_root, get_sequences_dir
from variantwriter.llm import Generator
from variantwriter.pipelines import Target, load_targets_from_list, parse_target_line, process_target, state_for
from variantwriter.sequences import SequenceIndex

TWO_NODES = [
    {"id": 1, "type": "autoroute", "routes": [{"default": True, "nextMessageId": 2}]},
    {"id": 2, "type": "bot", "text": "Good morning!", "contentKey": "bot.greet.morning"},
]


def _ctx(vw_base: Path, **sections) -> RunContext:
    tree = {
        "provider": {"api_key_env": "VW_TEST_LLM_KEY", "mock": False},
        "gen": {"max_chars_per_bubble": 30, "num_variants": 2},
        "io": {"dry_run": False},
        "rate_limit": {"rpm": 0, "retry_count": 0, "retry_backoff_ms": 0},
    }
    for name, values in sections.items():
        tree.setdefault(name, {}).update(values)
    return RunContext(
        config=PipelineConfig.from_tree(tree),
        index=SequenceIndex(get_sequences_dir()),
        content_root=get_content_root(),
        archive_dir=vw_base / "tool" / "ai_archive",
        config_path=vw_base / "tool" / "variants_config.yaml",
    )


class FixedTransport:
    def __init__(self, variants):
        self.variants = variants
        self.requests = []

    def __call__(self, request):
        self.requests.append(request)
        return {"variants": list(self.variants)}


def _archives(vw_base: Path):
    return sorted((vw_base / "tool" / "ai_archive").rglob("*.json"))


@pytest.fixture()
def api_key(monkeypatch):
    monkeypatch.setenv("VW_TEST_LLM_KEY", "sk-test-123456789")


def test_two_node_sequence_end_to_end(vw_base, write_sequence, api_key):
    write_sequence("s", TWO_NODES)
    ctx = _ctx(vw_base)
    transport = FixedTransport(["x" * 31, "Morning, sunshine!"])
    out = process_target(ctx, Target("s", 2), write_mode=True, generator=Generator(ctx.config, transport))

    assert [n.message_id for n in out.path.nodes] == [1, 2]
    assert not out.path.fell_back
    assert out.accepted == ["Morning, sunshine!"]
    assert out.written == 1
    assert out.target_file == vw_base / "assets" / "content" / "bot" / "greet" / "morning.txt"
    assert out.target_file.read_text(encoding="utf-8") == "Morning, sunshine!\n"

    prompt = transport.requests[0]["prompt"]
    assert prompt["context"] == []
    assert prompt["task"]["contentKey"] == "bot.greet.morning"
    assert prompt["task"]["targetPath"] == "content/bot/greet/morning.txt"
    assert prompt["path"]["steps"] == "s:1 -> s:2"

    (archive,) = _archives(vw_base)
    assert archive == out.archive_path
    record = json.loads(archive.read_text(encoding="utf-8"))
    assert record["acceptedVariants"] == ["Morning, sunshine!"]
    assert record["writeMode"] is True
    assert record["target"]["contentKey"] == "bot.greet.morning"
    assert [n["messageId"] for n in record["path"]["nodes"]] == [1, 2]
    assert record["response"] == {"variants": ["x" * 31, "Morning, sunshine!"]}
    assert record["environment"]["env"]["VW_TEST_LLM_KEY"].endswith("6789")
    assert "sk-test" not in json.dumps(record)


def test_dry_run_archives_without_writing(vw_base, write_sequence, capsys):
    write_sequence("s", TWO_NODES)
    ctx = _ctx(vw_base, io={"dry_run": True})
    out = process_target(ctx, Target("s", 2), write_mode=False)
    assert len(out.accepted) == 2
    assert not out.target_file.exists()
    assert len(_archives(vw_base)) == 1
    assert "(dry-run) Would append to: content/bot/greet/morning.txt" in capsys.readouterr().out


def test_existing_and_sibling_exemplars_feed_prompt_and_dedupe(vw_base, write_sequence, write_content, api_key):
    write_sequence("s", TWO_NODES)
    write_content("content/bot/greet/morning.txt", ["Morning, sunshine!"])
    write_content("content/bot/greet/evening.txt", ["Good evening!", "Evening, friend."])
    write_content("content/bot/greet/afternoon.txt", ["Good afternoon!"])
    ctx = _ctx(vw_base, context={"max_exemplars": 2})
    transport = FixedTransport(["morning sunshine", "Rise and shine!"])
    out = process_target(ctx, Target("s", 2), write_mode=True, generator=Generator(ctx.config, transport))

    assert out.accepted == ["Rise and shine!"]
    exemplars = transport.requests[0]["prompt"]["exemplars"]
    assert exemplars["existingVariants"] == ["Morning, sunshine!"]
    assert exemplars["siblingExemplars"] == ["Good afternoon!", "Good evening!"]
    assert out.target_file.read_text(encoding="utf-8").splitlines() == ["Morning, sunshine!", "Rise and shine!"]


def test_sibling_exemplars_can_be_disabled(vw_base, write_sequence, write_content, api_key):
    write_sequence("s", TWO_NODES)
    write_content("content/bot/greet/evening.txt", ["Good evening!"])
    ctx = _ctx(vw_base, context={"include_sibling_exemplars": False})
    transport = FixedTransport(["Hello there"])
    process_target(ctx, Target("s", 2), write_mode=False, generator=Generator(ctx.config, transport))
    assert transport.requests[0]["prompt"]["exemplars"]["siblingExemplars"] == []


def test_context_turns_carry_sample_phrasings(vw_base, write_sequence, write_content, api_key):
    write_sequence("s", [
        {"id": 1, "type": "bot", "text": "Hi", "contentKey": "bot.greet.hello.casual"},
        {"id": 2, "type": "bot", "text": "Ready?", "contentKey": "bot.greet.morning"},
    ])
    write_content("content/bot/greet/hello.txt", ["Hey!", "Hello!", "Howdy!"])
    ctx = _ctx(vw_base, context={"sample_phrasings": 2})
    transport = FixedTransport(["Ready to roll?"])
    process_target(ctx, Target("s", 2), write_mode=False, generator=Generator(ctx.config, transport))
    (turn,) = transport.requests[0]["prompt"]["context"]
    assert turn["text"] == "contentKey:bot.greet.hello.casual"
    assert turn["examples"] == ["Hey!", "Hello!"]


def test_generation_failure_still_archives(vw_base, write_sequence, api_key):
    write_sequence("s", TWO_NODES)
    ctx = _ctx(vw_base)

    def failing(request):
        raise GenerationError("backend down")

    with pytest.raises(GenerationError):
        process_target(ctx, Target("s", 2), write_mode=True, generator=Generator(ctx.config, failing))
    (archive,) = _archives(vw_base)
    record = json.loads(archive.read_text(encoding="utf-8"))
    assert record["acceptedVariants"] == []
    assert "backend down" in record["error"]
    assert not (vw_base / "assets" / "content" / "bot" / "greet" / "morning.txt").exists()


def test_target_without_content_key_fails(vw_base, write_sequence):
    write_sequence("s", [{"id": 1, "type": "bot", "text": "no key"}])
    with pytest.raises(TargetError):
        process_target(_ctx(vw_base), Target("s", 1), write_mode=False)


def test_malformed_content_key_fails(vw_base, write_sequence):
    write_sequence("s", [{"id": 1, "type": "bot", "text": "x", "contentKey": "bot.greet"}])
    with pytest.raises(ContentKeyError):
        process_target(_ctx(vw_base), Target("s", 1), write_mode=False)


def test_missing_message_fails(vw_base, write_sequence):
    write_sequence("s", TWO_NODES)
    with pytest.raises(TargetError):
        process_target(_ctx(vw_base), Target("s", 9), write_mode=False)


def test_state_tree_drives_path(vw_base, write_sequence):
    write_sequence("s", [
        {"id": 1, "type": "autoroute", "routes": [
            {"condition": "user.streak > 3", "nextMessageId": 3},
            {"default": True, "nextMessageId": 2},
        ]},
        {"id": 2, "type": "bot", "text": "low", "nextMessageId": 4},
        {"id": 3, "type": "bot", "text": "high", "nextMessageId": 4},
        {"id": 4, "type": "bot", "text": "t", "contentKey": "bot.greet.morning"},
    ])
    ctx = _ctx(vw_base, io={"dry_run": True})
    state = state_for(ctx, Target("s", 4), {"variables": {"user.streak": 5}})
    out = process_target(ctx, Target("s", 4), write_mode=False, state=state)
    assert [n.message_id for n in out.path.nodes] == [1, 3, 4]


def test_target_list_parsing(tmp_path):
    p = tmp_path / "targets.txt"
    p.write_text("# comment\n\ns:1\n  other_seq:12  \n", encoding="utf-8")
    assert load_targets_from_list(p) == [Target("s", 1), Target("other_seq", 12)]
    with pytest.raises(TargetError):
        parse_target_line("s:1:2")
    with pytest.raises(TargetError):
        parse_target_line("s:x")
    with pytest.raises(TargetError):
        load_targets_from_list(tmp_path / "missing.txt")


def test_fallback_path_uses_target_default_text(vw_base, write_sequence, api_key):
    write_sequence("s", [
        {"id": 1, "type": "bot", "text": "hello"},
        {"id": 9, "type": "bot", "text": "Rise and shine, friend", "contentKey": "bot.greet.morning"},
    ])
    ctx = _ctx(vw_base)
    transport = FixedTransport(["Morning, sunshine!"])
    out = process_target(ctx, Target("s", 9), write_mode=False, generator=Generator(ctx.config, transport))

    assert out.path.fell_back
    prompt = transport.requests[0]["prompt"]
    assert prompt["task"]["defaultText"] == "Rise and shine, friend"
    assert prompt["context"] == [
        {"sequenceId": "s", "id": 9, "sender": "bot", "type": "bot", "text": "Rise and shine, friend"},
    ]
    assert prompt["path"]["fellBack"] is True
