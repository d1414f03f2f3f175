from pathlib import Path

from variantwriter.config import PipelineConfig
from variantwriter.templates import (
    DEFAULT_SYSTEM_TEMPLATE,
    OUTPUT_FORMAT,
    SYSTEM_TEMPLATE_NAME,
    apply_template,
    apply_template_text,
    build_prompt,
    system_prompt,
)
from variantwriter.window import ContextTurn


def _config(**sections):
    return PipelineConfig.from_tree(sections)


def test_apply_template_text_replaces_every_token():
    out = apply_template_text("[A] and [A] then [B]", {"[A]": "x", "[B]": "y"})
    assert out == "x and x then y"


def test_apply_template_reads_file(tmp_path: Path):
    p = tmp_path / "t.md"
    p.write_text("Tone: [TONE]", encoding="utf-8")
    assert apply_template(p, {"[TONE]": "warm"}) == "Tone: warm"


def test_system_prompt_defaults(vw_base):
    s = system_prompt(_config())
    assert "|||" in s
    assert "(max 3)" in s
    assert "Do not use emojis." in s
    assert "Tone: friendly, concise." in s
    assert "[" + "TONE]" not in s
    assert DEFAULT_SYSTEM_TEMPLATE.startswith("You are a UX writer")


def test_system_prompt_emoji_rule_follows_style(vw_base):
    s = system_prompt(_config(style={"forbid_emojis": False, "tone": ["playful"]}))
    assert "emoji" not in s.lower()
    assert "Tone: playful." in s


def test_system_prompt_prefers_base_template_file(vw_base):
    p = vw_base / SYSTEM_TEMPLATE_NAME
    p.parent.mkdir(parents=True)
    p.write_text("Custom system. Max [MAX_BUBBLES] bubbles.\n", encoding="utf-8")
    assert system_prompt(_config(gen={"max_bubbles_per_line": 2})) == "Custom system. Max 2 bubbles."


def test_build_prompt_shape(vw_base):
    cfg = _config(gen={"num_variants": 5, "max_chars_per_bubble": 70}, context={"max_exemplars": 2})
    turn = ContextTurn(sender="bot", kind="bot", reference="Hello", sequence_id="s", message_id=1)
    prompt = build_prompt(
        cfg,
        content_key="bot.greet.morning",
        target_path="content/bot/greet/morning.txt",
        context=[turn],
        existing_variants=["Morning!"],
        sibling_exemplars=["a", "b", "c"],
        system="sys",
    ).to_dict()
    assert prompt["system"] == "sys"
    assert prompt["task"] == {
        "contentKey": "bot.greet.morning",
        "targetPath": "content/bot/greet/morning.txt",
        "constraints": {
            "numVariants": 5,
            "maxBubblesPerLine": 3,
            "maxCharsPerBubble": 70,
            "preservePlaceholders": True,
        },
    }
    assert prompt["context"] == [{"sequenceId": "s", "id": 1, "sender": "bot", "type": "bot", "text": "Hello"}]
    assert prompt["exemplars"] == {"existingVariants": ["Morning!"], "siblingExemplars": ["a", "b"]}
    assert prompt["output_format"] == OUTPUT_FORMAT
    assert "path" not in prompt


def test_build_prompt_carries_default_text(vw_base):
    prompt = build_prompt(
        _config(),
        content_key="bot.greet.morning",
        target_path="content/bot/greet/morning.txt",
        context=[],
        existing_variants=[],
        sibling_exemplars=[],
        system="sys",
        default_text="Good morning!",
    ).to_dict()
    assert prompt["task"]["defaultText"] == "Good morning!"
