import json

import pytest

from authorforge.core.types import ErrorKind, Failure, Success
from authorforge.exceptions import MalformedResponseError
from authorforge.extraction import extract_as, extract_json, require_json

pytestmark = pytest.mark.unit


@pytest.mark.parametrize(
    "value",
    [
        {"a": 1, "b": [1, 2, {"c": None}]},
        [1, "two", 3.5, True, None],
        {"quote": 'she said "hi"', "brace": "}{][", "unicode": "café"},
        [],
        {},
        42,
        -7.25,
        "plain string",
        True,
        False,
    ],
)
def test_serialized_values_are_recovered_exactly(value):
    assert extract_json(json.dumps(value)) == value


def test_null_literal_and_empty_inputs_yield_none():
    assert extract_json("null") is None
    assert extract_json(None) is None
    assert extract_json("") is None
    assert extract_json("   \n ") is None


def test_json_surrounded_by_prose_is_found():
    text = 'Sure! Here is the analysis:\n{"score": 88, "tags": ["dark", "tense"]}\nLet me know.'
    assert extract_json(text) == {"score": 88, "tags": ["dark", "tense"]}


def test_fenced_block_with_language_tag():
    text = 'Result:\n```json\n{"ok": true}\n```\nThanks'
    assert extract_json(text) == {"ok": True}


def test_fenced_block_without_language_tag():
    text = "```\n[1, 2, 3]\n```"
    assert extract_json(text) == [1, 2, 3]


def test_invalid_fence_falls_back_to_scan():
    text = '```json\nnot json at all\n```\nbut later {"x": 1}'
    assert extract_json(text) == {"x": 1}


def test_truncated_tail_after_complete_object_returns_first_object():
    text = '{"chapters": [{"title": "One"}]} {"chapters": [{"title": "Tw'
    assert extract_json(text) == {"chapters": [{"title": "One"}]}


def test_trailing_garbage_after_complete_object():
    text = '{"issues": []}\n\n### Notes\nsome trailing commentary'
    assert extract_json(text) == {"issues": []}


def test_nested_structures_with_escaped_quotes():
    text = 'Answer: {"line": "He said \\"stop }\\" twice", "inner": {"list": [[1], [2, [3]]]}} done'
    assert extract_json(text) == {
        "line": 'He said "stop }" twice',
        "inner": {"list": [[1], [2, [3]]]},
    }


def test_mismatched_closer_returns_last_balanced_candidate():
    text = '{"a": 1} ] {"b": 2}'
    assert extract_json(text) == {"a": 1}


def test_mismatched_closer_without_prior_candidate_returns_none():
    assert extract_json('{"a": [1, 2}') is None


def test_unterminated_structure_returns_none():
    assert extract_json('Here you go: {"a": [1, 2, 3') is None


def test_text_without_brackets_returns_none():
    assert extract_json("I could not analyse this chapter.") is None


def test_array_before_object_starts_the_scan():
    text = 'items: [1, {"k": "v"}] and {"other": true}'
    assert extract_json(text) == [1, {"k": "v"}]


def test_extract_as_filters_by_type():
    assert extract_as('{"a": 1}', dict) == {"a": 1}
    assert extract_as("[1, 2]", dict) is None
    assert extract_as("no json", list) is None


def test_require_json_success_and_failure():
    ok = require_json('prefix {"a": 1}')
    assert isinstance(ok, Success)
    assert ok.value == {"a": 1}

    bad = require_json("nothing structured")
    assert isinstance(bad, Failure)
    assert isinstance(bad.error, MalformedResponseError)
    assert bad.error.kind is ErrorKind.MALFORMED_RESPONSE
    assert bad.error.raw_text == "nothing structured"


def test_extract_never_raises_on_pathological_input():
    deep = "[" * 5000 + "]" * 5000
    # Either parses or gives up; it must not raise
    result = extract_json("x " + deep)
    assert result is None or isinstance(result, list)
