import json

from variantwriter.cli import main

SEQ = [
    {"id": 1, "type": "autoroute", "routes": [{"default": True, "nextMessageId": 2}]},
    {"id": 2, "type": "bot", "text": "Good morning!", "contentKey": "bot.greet.morning"},
    {"id": 3, "type": "bot", "text": "no key"},
]


def _archives(base):
    return sorted((base / "tool" / "ai_archive").rglob("*.json"))


def test_missing_target_args_is_usage_error(vw_base, capsys):
    assert main([]) == 2
    assert "Provide --sequence and --message" in capsys.readouterr().err


def test_unknown_flag_is_usage_error(vw_base):
    assert main(["--bogus"]) == 2


def test_dry_run_single_target_creates_sample_config(vw_base, write_sequence, capsys):
    write_sequence("s", SEQ)
    assert main(["--sequence", "s", "--message", "2"]) == 0
    out = capsys.readouterr().out
    assert "Generated 8 variants" in out
    assert "Done. ok=1 fail=0" in out
    assert (vw_base / "tool" / "variants_config.yaml").exists()
    (archive,) = _archives(vw_base)
    record = json.loads(archive.read_text(encoding="utf-8"))
    assert record["writeMode"] is False
    assert not (vw_base / "assets" / "content" / "bot" / "greet" / "morning.txt").exists()
    assert (vw_base / "run.log").exists()


def test_write_mode_appends(vw_base, write_sequence, write_config):
    write_sequence("s", SEQ)
    write_config("provider:\n  mock: true\ngen:\n  num_variants: 2\nio:\n  dry_run: false\n")
    assert main(["--sequence", "s", "--message", "2", "--write"]) == 0
    lines = (vw_base / "assets" / "content" / "bot" / "greet" / "morning.txt").read_text(encoding="utf-8").splitlines()
    assert lines == [
        "[bot.greet.morning] Variant 1 ||| Second bubble (optional)",
        "[bot.greet.morning] Variant 2 ||| Second bubble (optional)",
    ]


def test_list_counts_failures_and_continues(vw_base, write_sequence, capsys):
    write_sequence("s", SEQ)
    (vw_base / "targets.txt").write_text("# batch\ns:3\n\ns:2\n", encoding="utf-8")
    assert main(["--list", "targets.txt"]) == 1
    assert "Done. ok=1 fail=1" in capsys.readouterr().out
    assert len(_archives(vw_base)) == 1
    assert "no contentKey" in (vw_base / "run_error.log").read_text(encoding="utf-8")


def test_fail_fast_stops_at_first_failure(vw_base, write_sequence, capsys):
    write_sequence("s", SEQ)
    (vw_base / "targets.txt").write_text("s:3\ns:2\n", encoding="utf-8")
    assert main(["--list", "targets.txt", "--fail-fast"]) == 1
    assert "Done. ok=0 fail=1" in capsys.readouterr().out
    assert _archives(vw_base) == []


def test_bad_list_line_is_usage_error(vw_base):
    (vw_base / "targets.txt").write_text("s-2\n", encoding="utf-8")
    assert main(["--list", "targets.txt"]) == 2


def test_invalid_config_is_setup_error(vw_base, write_sequence, write_config):
    write_sequence("s", SEQ)
    write_config("gen:\n  num_variants: many\n")
    assert main(["--sequence", "s", "--message", "2"]) == 2
    assert _archives(vw_base) == []


def test_state_file_is_applied(vw_base, write_sequence, write_config):
    write_sequence("s", [
        {"id": 1, "type": "autoroute", "routes": [
            {"condition": "user.streak > 3", "nextMessageId": 3},
            {"default": True, "nextMessageId": 2},
        ]},
        {"id": 2, "type": "bot", "text": "low", "nextMessageId": 4},
        {"id": 3, "type": "bot", "text": "high", "nextMessageId": 4},
        {"id": 4, "type": "bot", "text": "t", "contentKey": "bot.greet.morning"},
    ])
    write_config("io:\n  dry_run: true\n")
    (vw_base / "state.yaml").write_text("variables:\n  user.streak: 5\n", encoding="utf-8")
    assert main(["--sequence", "s", "--message", "4", "--state", "state.yaml"]) == 0
    (archive,) = _archives(vw_base)
    record = json.loads(archive.read_text(encoding="utf-8"))
    assert [n["messageId"] for n in record["path"]["nodes"]] == [1, 3, 4]
    assert record["state"]["variables"] == {"user.streak": 5}
