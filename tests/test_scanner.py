"""Tests for the low-level Jenkinsfile scanner."""
from jenkins2gitlab.services.pipeline.scanner import (
    find_closing,
    find_variable_references,
    iter_blocks,
    line_number,
    mask_literals,
    parse_list_literal,
    parse_named_args,
    read_string_literal,
    split_top_level,
    strip_comments,
    unquote,
)


class TestLiteralHandling:
    def test_strip_comments_keeps_offsets_and_strings(self):
        text = "sh 'a // not a comment' // real comment\n/* block */ echo 'x'"
        stripped = strip_comments(text)
        assert len(stripped) == len(text)
        assert "not a comment" in stripped
        assert "real comment" not in stripped
        assert "block" not in stripped
        assert stripped.count("\n") == 1

    def test_mask_literals_blanks_strings(self):
        text = "stage('Build') { sh \"make\" }"
        masked = mask_literals(text)
        assert len(masked) == len(text)
        assert "Build" not in masked
        assert "make" not in masked
        assert masked.startswith("stage(")

    def test_find_closing_ignores_braces_in_strings(self):
        text = "steps { sh 'echo }' ; script { x } }"
        close = find_closing(text, text.index("{"))
        assert close == len(text) - 1

    def test_find_closing_unbalanced(self):
        assert find_closing("{ { }", 0) == -1

    def test_find_closing_parentheses(self):
        text = "call(a, fn(b), 'c)')"
        assert find_closing(text, 4) == len(text) - 1


class TestArguments:
    def test_split_top_level_respects_nesting(self):
        parts = split_top_level("a: 1, b: [1, 2], c: 'x, y'")
        assert parts == ["a: 1", "b: [1, 2]", "c: 'x, y'"]

    def test_parse_named_args_with_positionals(self):
        args = parse_named_args("'first', time: 5, unit: 'MINUTES'")
        assert args == {"_0": "'first'", "time": "5", "unit": "'MINUTES'"}

    def test_unquote_variants(self):
        assert unquote("'abc'") == "abc"
        assert unquote('"a\\"b"') == 'a"b'
        assert unquote("'''multi'''") == "multi"
        assert unquote("params.X") == "params.X"
        assert unquote(None) is None

    def test_parse_list_literal(self):
        assert parse_list_literal("['a', 'b', 'c']") == ["a", "b", "c"]
        assert parse_list_literal("'dev\\nprod'") == ["dev", "prod"]


class TestHelpers:
    def test_line_number_is_one_based(self):
        text = "a\nb\nc"
        assert line_number(text, 0) == 1
        assert line_number(text, text.index("c")) == 3

    def test_iter_blocks_skips_keyword_in_strings(self):
        text = "echo 'when {'\nwhen { branch 'main' }"
        blocks = list(iter_blocks(text, "when"))
        assert len(blocks) == 1
        _, start, end = blocks[0]
        assert "branch 'main'" in text[start:end]

    def test_find_variable_references(self):
        refs = find_variable_references("echo $FOO ${BAR} $$ESCAPED $lower $FOO")
        assert refs == ["FOO", "BAR"]

    def test_read_string_literal(self):
        assert read_string_literal("'abc' rest", 0) == ("abc", 5)
        assert read_string_literal('"""x\ny"""', 0) == ("x\ny", 9)
        assert read_string_literal("abc", 0) == (None, 0)
