"""Tests for the tolerant NDJSON parser chain."""

import unittest

import pytest

from aicommit.llm.response_parser import (
    PREVIEW_CHARS,
    JSONResponseParser,
    LenientJSONResponseParser,
    ParseFailure,
    PatternResponseParser,
    ResponseFragment,
    ResponseParseError,
    default_parsers,
    parse_response_lines,
)


STREAM = [
    '{"model":"llama3","response":"feat: ","done":false}',
    '{"model":"llama3","response":"add x","done":true}',
]


class TestJSONResponseParser(unittest.TestCase):
    def test_extracts_fragments_in_order(self) -> None:
        fragments = JSONResponseParser().parse(STREAM)
        self.assertEqual([f.text for f in fragments], ["feat: ", "add x"])
        self.assertEqual([f.is_final for f in fragments], [False, True])
        self.assertFalse(any(f.has_error for f in fragments))

    def test_thinking_is_kept_apart_from_text(self) -> None:
        [fragment] = JSONResponseParser().parse_line('{"thinking":"hmm","response":"","done":false}')
        self.assertEqual(fragment, ResponseFragment(text="", thinking="hmm"))

    def test_error_field(self) -> None:
        [fragment] = JSONResponseParser().parse_line('{"error":"model not found"}')
        self.assertTrue(fragment.has_error)
        self.assertEqual(fragment.error_text, "model not found")

    def test_null_error_is_not_an_error(self) -> None:
        [fragment] = JSONResponseParser().parse_line('{"response":"x","error":null}')
        self.assertFalse(fragment.has_error)

    def test_raw_newline_in_string_fails(self) -> None:
        with self.assertRaises(ResponseParseError):
            JSONResponseParser().parse(['{"response":"line1\nline2","done":true}'])

    def test_non_object_fails(self) -> None:
        with self.assertRaises(ResponseParseError):
            JSONResponseParser().parse(['["response"]'])


class TestLenientJSONResponseParser(unittest.TestCase):
    def test_accepts_control_characters(self) -> None:
        fragments = LenientJSONResponseParser().parse(['{"response":"a\tb\nc","done":true}'])
        self.assertEqual(fragments[0].text, "a\tb\nc")

    def test_ignores_surrounding_garbage(self) -> None:
        fragments = LenientJSONResponseParser().parse(['data: {"response":"ok","done":true} trailing'])
        self.assertEqual(fragments[0].text, "ok")
        self.assertTrue(fragments[0].is_final)

    def test_line_without_object_fails(self) -> None:
        with self.assertRaises(ResponseParseError):
            LenientJSONResponseParser().parse(["curl: (28) Operation timed out"])

    def test_concatenated_objects_on_one_line(self) -> None:
        line = '{"response":"feat: ","done":false}{"response":"add x","done":true}'
        fragments = LenientJSONResponseParser().parse([line])
        self.assertEqual([f.text for f in fragments], ["feat: ", "add x"])
        self.assertEqual([f.is_final for f in fragments], [False, True])

    def test_concatenated_objects_with_whitespace_between(self) -> None:
        line = '{"response":"a"}  {"thinking":"b"} \t{"response":"c","done":true}'
        fragments = LenientJSONResponseParser().parse([line])
        self.assertEqual([f.text for f in fragments], ["a", "", "c"])
        self.assertEqual(fragments[1].thinking, "b")


class TestPatternResponseParser(unittest.TestCase):
    def test_extracts_from_broken_json(self) -> None:
        lines = ['{"response":"fix: handle \\"quoted\\" names\\n", "done":true, oops']
        fragments = PatternResponseParser().parse(lines)
        self.assertEqual(fragments[0].text, 'fix: handle "quoted" names\n')
        self.assertTrue(fragments[0].is_final)

    def test_lines_without_fields_produce_no_fragment(self) -> None:
        fragments = PatternResponseParser().parse(["garbage", '{"response":"x"'])
        self.assertEqual([f.text for f in fragments], ["x"])

    def test_fails_when_nothing_matches(self) -> None:
        with self.assertRaises(ResponseParseError):
            PatternResponseParser().parse(["<html>502 Bad Gateway</html>"])

    def test_error_extraction(self) -> None:
        fragments = PatternResponseParser().parse(['{"error":"out of memory" broken'])
        self.assertEqual(fragments[0].error_text, "out of memory")

    def test_invalid_escape_falls_back_to_basic_unescape(self) -> None:
        fragments = PatternResponseParser().parse(['{"response":"C:\\qux\\n"'])
        self.assertEqual(fragments[0].text, "C:\\qux\n")


class TestParseResponseLines(unittest.TestCase):
    def test_well_formed_stream_uses_strict_parser(self) -> None:
        result = parse_response_lines(STREAM, default_parsers())
        self.assertEqual(result.parser_name, "json")
        self.assertEqual(result.attempted, ("json",))
        self.assertEqual("".join(f.text for f in result.fragments), "feat: add x")

    def test_falls_through_to_lenient_parser(self) -> None:
        lines = ['{"response":"feat: ","done":false}', '{"response":"multi\nline","done":true}']
        result = parse_response_lines(lines, default_parsers())
        self.assertEqual(result.parser_name, "lenient-json")
        self.assertEqual(result.attempted, ("json", "lenient-json"))
        # the whole line set comes from one stage
        self.assertEqual([f.text for f in result.fragments], ["feat: ", "multi\nline"])

    def test_concatenated_stream_keeps_every_fragment(self) -> None:
        lines = ['{"response":"feat: ","done":false}{"response":"add x","done":true}']
        result = parse_response_lines(lines, default_parsers())
        self.assertEqual(result.parser_name, "lenient-json")
        self.assertEqual("".join(f.text for f in result.fragments), "feat: add x")

    def test_falls_through_to_pattern_parser(self) -> None:
        lines = ['"response":"chore: bump deps","done":true']
        result = parse_response_lines(lines, default_parsers())
        self.assertEqual(result.parser_name, "pattern")
        self.assertEqual(result.attempted, ("json", "lenient-json", "pattern"))
        self.assertEqual(result.fragments[0].text, "chore: bump deps")

    def test_all_stages_fail(self) -> None:
        raw = "x" * 1000
        with self.assertRaises(ParseFailure) as ctx:
            parse_response_lines([raw], default_parsers())
        exc = ctx.exception
        self.assertEqual(exc.attempted, ("json", "lenient-json", "pattern"))
        self.assertEqual(len(exc.preview), PREVIEW_CHARS)
        self.assertIn("json, lenient-json, pattern", str(exc))
        self.assertIn("Parse error: pattern: no response fields found", str(exc))

    def test_parsing_is_idempotent(self) -> None:
        parsers = default_parsers()
        first = parse_response_lines(STREAM, parsers)
        second = parse_response_lines(STREAM, parsers)
        self.assertEqual(first, second)


@pytest.mark.parametrize(
    "line",
    [
        '{"response":"","done":false}',
        '{"done":true,"total_duration":123}',
    ],
)
def test_lines_without_text_give_empty_fragments(line):
    fragments = JSONResponseParser().parse([line])
    assert len(fragments) == 1
    assert fragments[0].text == ""


if __name__ == "__main__":
    unittest.main()
