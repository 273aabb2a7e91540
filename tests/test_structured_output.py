import pytest

from poi_guide.pipelines.structured_output import (
    parse_array_literal,
    parse_key_facts,
    parse_trivia,
    strip_code_fences,
    to_array_literal,
)


class TestParseTrivia:
    def test_wrapper_object(self):
        parsed = parse_trivia('{ "trivia": ["a","b"] }')

        assert parsed.items == ["a", "b"]
        assert parsed.strategy == "wrapper_key"

    def test_bare_array(self):
        parsed = parse_trivia('["one", "two", "three"]')

        assert parsed.items == ["one", "two", "three"]
        assert parsed.strategy == "strict_array"

    def test_unknown_wrapper_key(self):
        parsed = parse_trivia('{"fun_facts": ["x", "y"]}')

        assert parsed.items == ["x", "y"]
        assert parsed.strategy == "wrapper_key"

    def test_nested_objects_fall_back_to_string_leaves(self):
        raw = '{"trivia": [{"fact": "Built in 80 AD"}, {"fact": "Seated 50,000"}]}'
        parsed = parse_trivia(raw)

        assert parsed.items == ["Built in 80 AD", "Seated 50,000"]
        assert parsed.strategy == "string_leaves"

    def test_array_embedded_in_prose(self):
        raw = 'Here are some facts: ["It is old", "It is big"] Hope this helps!'
        parsed = parse_trivia(raw)

        assert parsed.items == ["It is old", "It is big"]
        assert parsed.strategy == "bracketed_list"

    def test_code_fenced_response(self):
        raw = '```json\n{"trivia": ["fenced"]}\n```'

        assert parse_trivia(raw).items == ["fenced"]

    def test_malformed_response_without_array_is_empty(self):
        parsed = parse_trivia("I could not think of any trivia, sorry.")

        assert parsed.items == []
        assert parsed.strategy == "empty"

    @pytest.mark.parametrize("raw", [None, "", "{}", '{"trivia": []}', "[1, 2, 3]"])
    def test_degenerate_inputs_never_raise(self, raw):
        assert parse_trivia(raw).items == []

    def test_limit_truncates(self):
        raw = '{"trivia": [' + ", ".join(f'"t{i}"' for i in range(20)) + "]}"

        assert parse_trivia(raw, limit=12).items == [f"t{i}" for i in range(12)]


class TestParseKeyFacts:
    def test_object(self):
        assert parse_key_facts('{"opened": "80 AD"}') == {"opened": "80 AD"}

    def test_object_inside_prose(self):
        raw = 'Sure! {"height": "48 m", "architect": null} Let me know.'

        assert parse_key_facts(raw) == {"height": "48 m", "architect": None}

    @pytest.mark.parametrize("raw", [None, "", "no json here", '["a", "b"]'])
    def test_non_object_is_empty(self, raw):
        assert parse_key_facts(raw) == {}


def test_strip_code_fences_leaves_plain_text():
    assert strip_code_fences("  plain  ") == "plain"


class TestArrayLiteral:
    def test_escapes_quotes_and_backslashes(self):
        items = ['say "hi"', "back\\slash", "comma, inside"]
        literal = to_array_literal(items)

        assert literal == '{"say \\"hi\\"","back\\\\slash","comma, inside"}'
        assert parse_array_literal(literal) == items

    def test_empty(self):
        assert to_array_literal([]) == "{}"
        assert parse_array_literal("{}") == []

    def test_unquoted_elements_and_null(self):
        assert parse_array_literal("{alpha,beta,NULL}") == ["alpha", "beta"]

    def test_none_is_empty(self):
        assert parse_array_literal(None) == []

    def test_rejects_non_literal(self):
        with pytest.raises(ValueError):
            parse_array_literal('["json", "array"]')
