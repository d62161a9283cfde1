"""
Tests for the record literal format used for composite values.
"""
from enum import Enum

import pytest

from typecache.binding.records import format_record, parse_record


class TestFormatRecord:

    def test_plain_values(self):
        assert format_record([1, "abc", 2.5]) == "(1,abc,2.5)"

    def test_null_and_empty_string_differ(self):
        assert format_record([None, ""]) == '(,"")'

    def test_booleans(self):
        assert format_record([True, False]) == "(t,f)"

    @pytest.mark.parametrize("value,expected", [
        ("a b", '("a b")'),
        ("a,b", '("a,b")'),
        ('say "hi"', '("say \\"hi\\"")'),
        ("back\\slash", '("back\\\\slash")'),
        ("(x)", '("(x)")'),
    ])
    def test_quoting(self, value, expected):
        assert format_record([value]) == expected


class TestParseRecord:

    def test_plain_values(self):
        assert parse_record("(1,abc,2.5)") == ["1", "abc", "2.5"]

    def test_unquoted_empty_is_null(self):
        assert parse_record("(,x,)") == [None, "x", None]

    def test_quoted_empty_is_empty_string(self):
        assert parse_record('("",x)') == ["", "x"]

    def test_both_escape_styles(self):
        assert parse_record('("a\\"b","c""d")') == ['a"b', 'c"d']

    def test_quoted_separator(self):
        assert parse_record('("a,b",c)') == ["a,b", "c"]

    def test_reads_what_format_writes(self):
        values = ["x y", None, 'q"', "", "p,(q)"]

        assert parse_record(format_record(values)) == values

    @pytest.mark.parametrize("literal", ["", "1,2", "(1,2", '("open)'])
    def test_malformed(self, literal):
        with pytest.raises(ValueError):
            parse_record(literal)


class TestEnumFields:

    def test_str_enum_member_uses_label(self):
        class Colour(str, Enum):
            RED = "red"

        assert format_record([Colour.RED, 1]) == "(red,1)"

    def test_int_enum_member_uses_name(self):
        class Level(Enum):
            HIGH = 2

        assert format_record([Level.HIGH]) == "(HIGH)"
