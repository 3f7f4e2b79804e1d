import pytest

from newsdesk.tools.json_repair import (
    JSONExtractionError,
    extract_list_from_response,
    iter_json_values,
    parse_json_response,
    strip_code_fences,
)


def test_strips_json_code_fence():
    text = '```json\n[{"id": 1}]\n```'
    assert strip_code_fences(text) == '[{"id": 1}]'
    assert parse_json_response(text) == [{"id": 1}]


def test_tolerates_prose_around_payload():
    text = 'Sure! Here are the clusters:\n{"eventTitle": "Flood", "articleIds": [1, 2]}\nHope this helps.'
    assert parse_json_response(text) == {"eventTitle": "Flood", "articleIds": [1, 2]}


def test_skips_braces_that_are_not_json():
    text = 'Groups {see below} follow: [{"eventIds": [3, 4]}]'
    assert parse_json_response(text) == [{"eventIds": [3, 4]}]


def test_brackets_inside_strings_do_not_end_the_object():
    text = '{"discrepancies": "Source A says [2] dead } Source B says 1", "confidenceScore": 0.7}'
    data = parse_json_response(text)
    assert data["confidenceScore"] == 0.7
    assert "[2]" in data["discrepancies"]


def test_literal_newlines_inside_strings_are_accepted():
    text = '{"aggregatedSummary": "line one\nline two"}'
    assert parse_json_response(text)["aggregatedSummary"] == "line one\nline two"


@pytest.mark.parametrize("text", ["", "   ", "no json here at all", '{"unterminated": [1, 2'])
def test_raises_when_nothing_parses(text):
    with pytest.raises(JSONExtractionError):
        parse_json_response(text)


def test_extract_list_from_wrapper_dict():
    assert extract_list_from_response({"clusters": [{"a": 1}]}) == [{"a": 1}]
    assert extract_list_from_response({"mergeGroups": []}) == []
    assert extract_list_from_response({"a": 1}) == [{"a": 1}]
    assert extract_list_from_response([1, 2]) == [1, 2]
    assert extract_list_from_response(None) == []


def test_fenced_block_wins_over_brackets_in_prose():
    text = 'Found 1 group [1] below:\n```json\n[{"eventTitle": "Flood", "articleIds": [1, 2]}]\n```\nDone.'
    assert parse_json_response(text) == [{"eventTitle": "Flood", "articleIds": [1, 2]}]


def test_values_nested_in_a_parsed_value_are_not_repeated():
    text = 'First [1] then {"a": {"b": [2]}} and finally [3]'
    assert list(iter_json_values(text)) == [[1], {"a": {"b": [2]}}, [3]]
