"""Tests for core/isbn.py -- checksum conversion and candidate generation."""

import pytest

from shelflookup.core.isbn import (
    clean_isbn,
    digits_only,
    is_isbn_length,
    isbn_candidates,
    to_isbn10,
    to_isbn13,
)

VALID_ISBN10 = ["0306406152", "080442957X", "0143127748", "0000000000", "0545010225"]


class TestToIsbn13:
    def test_known_conversion(self):
        assert to_isbn13("0306406152") == "9780306406157"

    def test_x_check_digit_input(self):
        assert to_isbn13("080442957X") == "9780804429573"

    def test_lowercase_x_accepted(self):
        assert to_isbn13("080442957x") == "9780804429573"

    @pytest.mark.parametrize("value", ["", "123", "03064061521", "9780306406157"])
    def test_wrong_length_returns_none(self, value):
        assert to_isbn13(value) is None

    def test_non_digit_prefix_returns_none(self):
        assert to_isbn13("03064X6152") is None


class TestToIsbn10:
    def test_known_conversion(self):
        assert to_isbn10("9780306406157") == "0306406152"

    def test_remainder_ten_maps_to_x(self):
        assert to_isbn10("9780804429573") == "080442957X"

    def test_remainder_eleven_maps_to_zero(self):
        assert to_isbn10("9780000000002") == "0000000000"

    def test_979_prefix_not_convertible(self):
        assert to_isbn10("9791234567896") is None

    def test_wrong_length_returns_none(self):
        assert to_isbn10("978030640615") is None


class TestRoundTrip:
    @pytest.mark.parametrize("isbn10", VALID_ISBN10)
    def test_isbn10_round_trip(self, isbn10):
        assert to_isbn10(to_isbn13(isbn10)) == isbn10

    @pytest.mark.parametrize("isbn10", VALID_ISBN10)
    def test_isbn13_round_trip(self, isbn10):
        isbn13 = to_isbn13(isbn10)
        assert to_isbn13(to_isbn10(isbn13)) == isbn13


class TestCandidates:
    def test_strips_non_digits(self):
        assert isbn_candidates("978-0-306-40615-7")[0] == "9780306406157"

    def test_empty_input_yields_nothing(self):
        assert isbn_candidates("no digits here") == []

    def test_isbn13_scan_adds_isbn10(self):
        assert isbn_candidates("9780143127741") == ["9780143127741", "0143127748"]

    def test_isbn10_scan_adds_isbn13(self):
        assert isbn_candidates("0306406152") == ["0306406152", "9780306406157"]

    def test_upc_scan_adds_ean_variant(self):
        assert isbn_candidates("012345678905") == ["012345678905", "0012345678905"]

    def test_979_scan_has_no_isbn10(self):
        assert isbn_candidates("9791234567896") == ["9791234567896"]

    def test_short_code_is_kept_alone(self):
        assert isbn_candidates("12345") == ["12345"]


class TestHelpers:
    def test_digits_only(self):
        assert digits_only("ISBN 0-306-40615-2") == "0306406152"
        assert digits_only("") == ""

    @pytest.mark.parametrize("value,expected", [("0306406152", True), ("9780306406157", True), ("12345", False)])
    def test_is_isbn_length(self, value, expected):
        assert is_isbn_length(value) is expected

    def test_clean_isbn_keeps_x_and_uppercases(self):
        assert clean_isbn("0-8044-2957-x") == "080442957X"

    def test_clean_isbn_rejects_bad_length(self):
        assert clean_isbn("UOM:39015012345678") == ""
        assert clean_isbn(None) == ""
