"""Tests for core/models.py -- result invariants, genre mapping, retry policy."""

import dataclasses

import pytest

from shelflookup.core.models import (
    UNKNOWN_AUTHOR,
    CatalogQuery,
    Genre,
    LookupResult,
    RetryPolicy,
    classify_genre,
)


class TestClassifyGenre:
    @pytest.mark.parametrize(
        "category,expected",
        [
            ("Science Fiction", Genre.SCIENCE_FICTION),
            ("Children's Stories", Genre.CHILDREN),
            ("Unrelated Topic", Genre.OTHER),
            ("Fiction / Fantasy / Epic", Genre.FANTASY),
            ("Juvenile Fiction", Genre.CHILDREN),
            ("Detective and mystery stories", Genre.MYSTERY),
            ("Biography & Autobiography", Genre.BIOGRAPHY),
            ("Memoirs", Genre.BIOGRAPHY),
            ("Self-Help", Genre.SELF_HELP),
            ("World History", Genre.HISTORICAL),
            ("sci-fi", Genre.SCIENCE_FICTION),
            ("Fiction", Genre.FICTION),
            ("", Genre.OTHER),
            (None, Genre.OTHER),
        ],
    )
    def test_mapping(self, category, expected):
        assert classify_genre(category) == expected

    def test_nonfiction_matches_fiction_first(self):
        assert classify_genre("Nonfiction") == Genre.FICTION


class TestLookupResult:
    def test_trims_and_defaults(self):
        result = LookupResult(title="  Dune  ", author="  ")
        assert result.title == "Dune"
        assert result.author == UNKNOWN_AUTHOR
        assert result.isbn == ""
        assert result.genre == Genre.OTHER
        assert result.cover_url == ""

    @pytest.mark.parametrize("title", ["", "   ", None])
    def test_blank_title_rejected(self, title):
        with pytest.raises(ValueError):
            LookupResult(title=title)

    @pytest.mark.parametrize("isbn", ["0306406152", "080442957X", "9780306406157"])
    def test_valid_isbns(self, isbn):
        assert LookupResult(title="T", isbn=isbn).isbn == isbn

    @pytest.mark.parametrize("isbn", ["12345", "97803064061", "X306406152", "978-0306406157"])
    def test_invalid_isbns_rejected(self, isbn):
        with pytest.raises(ValueError):
            LookupResult(title="T", isbn=isbn)

    def test_cover_upgraded_to_https(self):
        result = LookupResult(title="T", cover_url="http://books.google.com/x.jpg")
        assert result.cover_url == "https://books.google.com/x.jpg"

    def test_with_cover_returns_new_instance(self):
        original = LookupResult(title="T", cover_url="https://a/1.jpg")
        updated = original.with_cover("http://b/2.jpg")
        assert updated is not original
        assert original.cover_url == "https://a/1.jpg"
        assert updated.cover_url == "https://b/2.jpg"
        assert updated.title == original.title

    def test_is_immutable(self):
        result = LookupResult(title="T")
        with pytest.raises(dataclasses.FrozenInstanceError):
            result.title = "Other"

    def test_to_dict_uses_genre_display_value(self):
        result = LookupResult(title="T", author="A", genre=Genre.SELF_HELP)
        assert result.to_dict() == {
            "title": "T",
            "author": "A",
            "isbn": "",
            "genre": "Self Help",
            "cover_url": "",
        }


class TestRetryPolicy:
    def test_linear_backoff(self):
        policy = RetryPolicy(backoff_base=0.5)
        assert [policy.backoff(i) for i in range(3)] == [0.5, 1.0, 1.5]

    def test_requires_one_attempt(self):
        with pytest.raises(ValueError):
            RetryPolicy(max_attempts=0)


class TestCatalogQuery:
    def test_str(self):
        assert str(CatalogQuery("google", "isbn:123")) == "google:isbn:123"
