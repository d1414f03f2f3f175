from variantwriter.config import PipelineConfig
from variantwriter.validation import jaccard, placeholders_balanced, token_set, validate_batch, validate_report


def _config(**gen):
    base = {"max_bubbles_per_line": 2, "max_chars_per_bubble": 40, "dedupe_threshold": 0.82}
    base.update(gen)
    return PipelineConfig.from_tree({"gen": base, "safety": {"blocklist": ["Darn"]}})


def test_too_many_bubbles_rejected():
    cfg = _config()
    out = validate_batch(["one ||| two ||| three", "one ||| two"], [], cfg)
    assert out == ["one ||| two"]


def test_over_length_bubble_rejected():
    cfg = _config()
    assert validate_batch(["x" * 41, "short enough"], [], cfg) == ["short enough"]


def test_unbalanced_placeholders_rejected():
    cfg = _config()
    out = validate_batch(["Hi {user.name", "Hi user.name}", "Hi }{", "Hi {user.name}!"], [], cfg)
    assert out == ["Hi {user.name}!"]
    assert placeholders_balanced("{a{b}}")
    assert not placeholders_balanced("{a}}")


def test_blocklist_is_case_insensitive():
    cfg = _config()
    out = validate_batch(["well DARN it", "well done"], [], cfg)
    assert out == ["well done"]


def test_intra_batch_near_duplicates_keep_first():
    cfg = _config()
    out = validate_batch(["Great job today!", "great job, today", "Nice work on that"], [], cfg)
    assert out == ["Great job today!", "Nice work on that"]


def test_existing_lines_are_dedupe_base():
    cfg = _config()
    assert validate_batch(["Great job today!"], ["great JOB today"], cfg) == []


def test_normalizes_whitespace_and_drops_empty():
    cfg = _config()
    report = validate_report(["  tab\there  ", "   "], [], cfg)
    assert report.accepted == ["tab here"]
    assert report.rejected == [("", "empty")]


def test_rejection_reasons():
    cfg = _config()
    report = validate_report(["a ||| b ||| c", "{x", "Darn", "fine line", "Fine line"], ["old line"], cfg)
    reasons = [r for _, r in report.rejected]
    assert reasons == ["too-many-bubbles", "unbalanced-placeholders", "blocklisted", "duplicate-batch"]


def test_token_set_and_jaccard():
    assert token_set("Hello, World! a|b") == {"hello", "world", "a|b"}
    assert jaccard("a b c", "a b c") == 1.0
    assert jaccard("a b", "c d") == 0.0
    assert jaccard("", "") == 0.0
    # Token sets ignore order
    assert jaccard("dog bites man", "man bites dog") == 1.0


def test_order_preserving():
    cfg = _config()
    cands = ["Zebra crossing ahead", "Apples are red", "Morning has come"]
    assert validate_batch(cands, [], cfg) == cands


def test_pipes_rejected_when_disallowed():
    tree = {"gen": {"max_bubbles_per_line": 3}, "style": {"allow_pipes": False}}
    report = validate_report(["one ||| two", "just one"], [], PipelineConfig.from_tree(tree))
    assert report.accepted == ["just one"]
    assert report.rejected == [("one ||| two", "pipes-not-allowed")]
    assert validate_batch(["one ||| two"], [], _config()) == ["one ||| two"]


def test_pii_patterns_reject_matches():
    cfg = PipelineConfig.from_tree({"safety": {"pii_regexes": [r"\d{3}-\d{4}", r"@\w+\.com"]}})
    report = validate_report(["Call 555-1234 now", "Mail me at a@b.com", "See you soon"], [], cfg)
    assert report.accepted == ["See you soon"]
    assert [r for _, r in report.rejected] == ["pii", "pii"]
