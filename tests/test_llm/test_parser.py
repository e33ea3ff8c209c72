"""Tests for sentinel-wrapped reply parsing."""

import pytest

from app.llm.errors import ParseError
from app.llm.parser import (
    SENTINEL,
    UNSAFE,
    extract_json_block,
    parse_analysis_response,
    parse_sensitivity_response,
)


def wrap(body: str) -> str:
    return f"{SENTINEL}\n{body}\n{SENTINEL}"


class TestExtractJsonBlock:
    """Test extraction of the first delimited block."""

    def test_should_return_object_and_raw_block(self):
        # Arrange
        content = "preamble " + wrap('{"summary": "s"}') + " trailing"

        # Act
        parsed, raw = extract_json_block(content)

        # Assert
        assert parsed == {"summary": "s"}
        assert raw.startswith(SENTINEL) and raw.endswith(SENTINEL)

    def test_should_take_first_block_when_several(self):
        content = wrap('{"summary": "first"}') + wrap('{"summary": "second"}')

        parsed, _ = extract_json_block(content)

        assert parsed["summary"] == "first"

    def test_should_strip_code_fences_inside_block(self):
        content = wrap('```json\n{"summary": "fenced"}\n```')

        parsed, _ = extract_json_block(content)

        assert parsed == {"summary": "fenced"}

    @pytest.mark.parametrize(
        "content",
        [
            '{"summary": "no sentinels"}',
            f'{SENTINEL} {{"summary": "only one"}}',
            wrap('{"summary": "unterminated'),
            wrap('["not", "an", "object"]'),
        ],
    )
    def test_should_raise_parse_error(self, content):
        with pytest.raises(ParseError):
            extract_json_block(content)


class TestParseAnalysisResponse:
    """Test the note analysis contract."""

    def test_should_parse_all_fields(self):
        content = wrap(
            '{"summary": " A sums up B ", "contentType": "tutorial", '
            '"relatedProducts": "X serum,Y cream"}'
        )

        result = parse_analysis_response(content)

        assert result.summary == "A sums up B"
        assert result.content_type == "tutorial"
        assert result.related_products == "X serum,Y cream"
        assert SENTINEL in result.raw_block

    def test_should_join_product_list(self):
        content = wrap(
            '{"summary": "s", "contentType": "vlog", '
            '"relatedProducts": ["X serum", " ", "Y cream"]}'
        )

        result = parse_analysis_response(content)

        assert result.related_products == "X serum,Y cream"

    def test_should_allow_missing_products(self):
        result = parse_analysis_response(wrap('{"summary": "s", "contentType": "vlog"}'))

        assert result.related_products == ""

    @pytest.mark.parametrize(
        "content",
        [
            "",
            "   ",
            wrap('{"contentType": "vlog"}'),
            wrap('{"summary": "", "contentType": "vlog"}'),
            wrap('{"summary": "s"}'),
            wrap('{"summary": "s", "contentType": "  "}'),
        ],
    )
    def test_should_fail_closed_on_incomplete_reply(self, content):
        with pytest.raises(ParseError):
            parse_analysis_response(content)


class TestParseSensitivityResponse:
    """Test the image check contract, which defaults to unsafe."""

    def test_should_return_description_for_clean_reply(self):
        result = parse_sensitivity_response(wrap('{"summary": "A cat on a sofa"}'))

        assert result.description == "A cat on a sofa"
        assert result.is_sensitive is False

    @pytest.mark.parametrize(
        "content",
        [
            "ext",
            " ext ",
            "",
            "I cannot describe this image.",
            wrap("not json"),
            wrap('{"summary": ""}'),
            wrap('{"description": "wrong key"}'),
        ],
    )
    def test_should_treat_anything_else_as_sensitive(self, content):
        assert parse_sensitivity_response(content) == UNSAFE
