"""
Tests for the vocabulary ingestion pipeline (JSON records and pasted text).
Run: python -m pytest tests/test_ingestion.py -v
"""

import pytest

from lexify import (
    EmptyInputError,
    FormatError,
    SchemaError,
    VocabWord,
    convert_text,
    export_words,
    parse_json,
    records_from_value,
    validate_json,
    validate_records,
    words_from_text,
)


def _record(uz="kitob", en="book", example="I read a book."):
    return {"uz": uz, "en": en, "exampleText": example}


class TestRecordValidator:

    def test_accepts_records_in_order(self):
        result = validate_records([_record(), _record("salom", "hello", "Hello there.")])

        assert result.valid
        assert result.error is None
        assert result.data == (
            VocabWord(en="book", uz="kitob", example_text="I read a book."),
            VocabWord(en="hello", uz="salom", example_text="Hello there."),
        )

    def test_revalidating_exported_words_is_identity(self):
        first = validate_records([_record(), _record("olma", "apple", "An apple a day.")])
        second = validate_records(export_words(first.data))

        assert second.valid
        assert second.data == first.data

    def test_extra_keys_are_ignored(self):
        record = _record()
        record["_id"] = "65a1f0"

        result = validate_records([record])

        assert result.valid
        assert result.data[0].to_dict() == _record()

    @pytest.mark.parametrize("value", [{"uz": "kitob"}, "book", 3, None])
    def test_rejects_non_array(self, value):
        result = validate_records(value)

        assert not result.valid
        assert result.data == ()
        assert result.error == "JSON must be an array of vocabulary objects"

    def test_rejects_empty_array(self):
        result = validate_records([])

        assert not result.valid
        assert result.error == "JSON array cannot be empty"

    def test_rejects_non_object_item(self):
        result = validate_records([_record(), "book, kitob"])

        assert result.error == "Item 2 is not an object"

    def test_null_item_is_not_an_object(self):
        assert validate_records([None]).error == "Item 1 is not an object"

    def test_first_violation_wins(self):
        result = validate_records([_record(), {"en": "cat"}, {}])

        assert not result.valid
        assert result.error == "Item 2: 'uz' field is missing or not a string"

    def test_fields_checked_uz_then_en_then_example(self):
        assert validate_records([{"uz": "mushuk"}]).error == "Item 1: 'en' field is missing or not a string"
        assert (
            validate_records([{"uz": "mushuk", "en": "cat"}]).error
            == "Item 1: 'exampleText' field is missing or not a string"
        )

    def test_rejects_non_string_and_blank_values(self):
        assert validate_records([_record(example=5)]).error == (
            "Item 1: 'exampleText' field is missing or not a string"
        )
        assert validate_records([_record(uz="   ")]).error == "Item 1: 'uz' field is missing or not a string"

    def test_schema_error_carries_position_and_field(self):
        with pytest.raises(SchemaError) as excinfo:
            records_from_value([_record(), _record(), _record(en="")])

        assert excinfo.value.position == 3
        assert excinfo.value.field == "en"

    def test_empty_array_is_empty_input(self):
        with pytest.raises(EmptyInputError):
            records_from_value([])


class TestJsonParsing:

    def test_validate_json_accepts_array(self, sample_json):
        result = validate_json(sample_json)

        assert result.valid
        assert [word.en for word in result.data] == ["book", "hello", "cat"]

    def test_invalid_json_reports_parser_message(self):
        result = validate_json('[{"uz": "kitob",}]')

        assert not result.valid
        assert result.error.startswith("Invalid JSON format: ")

    def test_blank_input(self):
        assert validate_json("   \n").error == "No vocabulary data provided"

    def test_parse_json_raises_format_error_with_line(self):
        with pytest.raises(FormatError) as excinfo:
            parse_json('[\n  {"uz": }\n]')

        assert excinfo.value.line == 2


class TestTextConverter:

    def test_two_fields(self):
        result = convert_text("hello, salom")

        assert result.valid
        assert result.data == (VocabWord(en="hello", uz="salom", example_text=""),)

    def test_example_keeps_inner_commas(self):
        result = convert_text("book, kitob, I read a book, it was great.")

        assert result.data == (
            VocabWord(en="book", uz="kitob", example_text="I read a book, it was great."),
        )

    def test_blank_lines_are_skipped_and_not_numbered(self):
        result = convert_text("hello, salom\n\n   \nno comma here\n")

        assert not result.valid
        assert result.error == "Line 2: Must use comma to separate English and Uzbek"

    def test_missing_side_is_rejected(self):
        assert convert_text("hello, salom\n , kitob").error == "Line 2: Both English and Uzbek are required"
        assert convert_text("book,  , I read a book.").error == "Line 1: Both English and Uzbek are required"

    def test_trailing_comma_gives_empty_example(self):
        result = convert_text("hello, salom,")

        assert result.data == (VocabWord(en="hello", uz="salom", example_text=""),)

    def test_windows_line_endings(self):
        result = convert_text("cat, mushuk\r\ndog, it, The dog barks.  \r\n")

        assert result.data == (
            VocabWord(en="cat", uz="mushuk", example_text=""),
            VocabWord(en="dog", uz="it", example_text="The dog barks."),
        )

    def test_single_failure_aborts_whole_conversion(self):
        result = convert_text("cat, mushuk\ndog it\nbird, qush")

        assert not result.valid
        assert result.data == ()

    def test_empty_text(self):
        assert convert_text("\n  \n").error == "No vocabulary lines found"

    def test_format_error_carries_line(self):
        with pytest.raises(FormatError) as excinfo:
            words_from_text("a, b\nc, d\ne")

        assert excinfo.value.line == 3
