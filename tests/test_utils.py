"""Tests for utility functions."""

from __future__ import annotations

from datetime import date

import pytest

from citekit import (
    Name,
    doi_normalize,
    doi_url,
    extract_authors,
    extract_date,
    extract_doi_from_url,
    extract_isbn_from_text,
    extract_pmid_from_url,
    is_doi,
    is_isbn_shaped,
    is_pmid,
    is_valid_isbn10,
    is_valid_isbn13,
    isbn10_to_isbn13,
    isbn13_to_isbn10,
    isbn_clean,
    parse_author_name,
    parse_date_string,
    parse_pubmed_date,
)
from citekit.utils import family_name, initials, split_author_string, strip_tags


class TestDoi:
    """Tests for DOI syntax helpers."""

    @pytest.mark.parametrize(
        "doi",
        [
            "10.1038/nature12373",
            "10.1000/xyz123",
            "10.12345/a.b-c_d;e(f)",
            "doi:10.1145/3292500.3330919",
            "DOI:10.1016/j.cell.2020.01.001",
        ],
    )
    def test_valid_dois(self, doi):
        assert is_doi(doi)

    @pytest.mark.parametrize(
        "text",
        ["", "11.1038/nature12373", "nature12373", "10.12/short-registrant", "10.1038/", "10.1038/has space"],
    )
    def test_invalid_dois(self, text):
        assert not is_doi(text)

    def test_normalize_strips_prefixes_and_lowercases(self):
        assert doi_normalize("https://doi.org/10.1038/NATURE12373") == "10.1038/nature12373"
        assert doi_normalize("doi: 10.1038/nature12373") == "10.1038/nature12373"
        assert doi_normalize("https://dx.doi.org/10.1/x") == "10.1/x"

    def test_normalize_none(self):
        assert doi_normalize(None) is None
        assert doi_normalize("") is None

    def test_doi_url(self):
        assert doi_url("10.1038/nature12373") == "https://doi.org/10.1038/nature12373"

    def test_extract_doi_from_url(self):
        assert extract_doi_from_url("https://doi.org/10.1038/nature12373") == "10.1038/nature12373"
        assert extract_doi_from_url("see doi:10.1000/ABC.") == "10.1000/abc"
        assert extract_doi_from_url("https://example.com/paper") is None


class TestPmid:
    """Tests for PMID helpers."""

    def test_is_pmid(self):
        assert is_pmid("23903748")
        assert is_pmid("PMID: 23903748")
        assert not is_pmid("123")
        assert not is_pmid("10.1038/nature12373")

    def test_extract_pmid_from_url(self):
        assert extract_pmid_from_url("https://pubmed.ncbi.nlm.nih.gov/23903748/") == "23903748"
        assert extract_pmid_from_url("https://www.ncbi.nlm.nih.gov/pubmed/23903748") == "23903748"
        assert extract_pmid_from_url("https://example.com/23903748") is None


class TestIsbn:
    """Tests for ISBN cleanup, checksums and conversion."""

    def test_clean_removes_prefix_and_separators(self):
        assert isbn_clean("ISBN-13: 978-0-262-03384-8") == "9780262033848"
        assert isbn_clean("isbn 0-8044-2957-x") == "080442957X"

    def test_shape_check_is_length_only(self):
        assert is_isbn_shaped("978-0-262-03384-8")
        assert is_isbn_shaped("0262033844")
        assert not is_isbn_shaped("12345")

    def test_valid_checksums(self):
        assert is_valid_isbn13("9780262033848")
        assert is_valid_isbn10("0262033844")
        assert is_valid_isbn10("080442957X")

    def test_tampered_last_digit_rejected(self):
        assert not is_valid_isbn13("9780262033847")
        assert not is_valid_isbn10("0262033845")

    @pytest.mark.parametrize("isbn10", ["0262033844", "080442957X", "0306406152"])
    def test_isbn10_round_trip_is_fixed_point(self, isbn10):
        isbn13 = isbn10_to_isbn13(isbn10)
        assert is_valid_isbn13(isbn13)
        assert isbn13_to_isbn10(isbn13) == isbn10

    def test_isbn10_to_isbn13(self):
        assert isbn10_to_isbn13("0-262-03384-4") == "9780262033848"

    def test_979_has_no_isbn10(self):
        assert isbn13_to_isbn10("9791234567896") is None

    def test_extract_isbn_from_text(self):
        assert extract_isbn_from_text("Printed edition ISBN 978-0-262-03384-8 (hardcover)") == "9780262033848"
        assert extract_isbn_from_text("No identifiers here") is None


class TestAuthors:
    """Tests for author-name parsing."""

    def test_parse_inverted(self):
        assert parse_author_name("Smith, John A.") == Name(family="Smith", given="John A.")

    def test_parse_natural(self):
        assert parse_author_name("John A. Smith") == Name(family="Smith", given="John A.")

    def test_parse_single_token(self):
        assert parse_author_name("Plato") == Name(family="Plato")

    def test_split_keeps_inverted_names_together(self):
        assert split_author_string("Smith, John and Doe, Jane") == ["Smith, John", "Doe, Jane"]

    def test_split_natural_comma_list(self):
        assert split_author_string("John Smith, Jane Doe & Bob Lee") == ["John Smith", "Jane Doe", "Bob Lee"]

    def test_extract_from_dicts(self):
        names = extract_authors([{"given": "Ada", "family": "Lovelace"}, {"name": "WHO"}, {"literal": "CERN"}])
        assert names == (Name("Lovelace", "Ada"), Name(family="WHO"), Name(literal="CERN"))

    def test_extract_from_string(self):
        assert extract_authors("Ada Lovelace; Charles Babbage") == (
            Name("Lovelace", "Ada"),
            Name("Babbage", "Charles"),
        )

    def test_extract_empty(self):
        assert extract_authors(None) == ()
        assert extract_authors([]) == ()

    def test_family_name(self):
        assert family_name("Smith, John") == "Smith"
        assert family_name("John Smith") == "Smith"
        assert family_name(Name(literal="World Health Organization")) == "Organization"
        assert family_name(Name("Curie", "Marie")) == "Curie"

    def test_initials(self):
        assert initials("John Ronald") == "J. R."
        assert initials("Jean-Paul") == "J.-P."
        assert initials("P. C.") == "P. C."


class TestDates:
    """Tests for partial date parsing."""

    @pytest.mark.parametrize(
        "text,expected",
        [
            ("2020", (2020,)),
            ("2020-05", (2020, 5)),
            ("2020-05-12T10:00:00Z", (2020, 5, 12)),
            ("2013/07/31", (2013, 7, 31)),
            ("May 12, 2020", (2020, 5, 12)),
            ("12 May 2020", (2020, 5, 12)),
            ("May 2020", (2020, 5)),
            ("2023 Jan 15", (2023, 1, 15)),
            ("Published in 1999 somewhere", (1999,)),
        ],
    )
    def test_parse_date_string(self, text, expected):
        assert parse_date_string(text) == expected

    def test_parse_date_string_garbage(self):
        assert parse_date_string("unknown") is None
        assert parse_date_string("") is None

    def test_pubmed_dates(self):
        assert parse_pubmed_date("2023") == (2023,)
        assert parse_pubmed_date("2023 Jan") == (2023, 1)
        assert parse_pubmed_date("2023 Jan 15") == (2023, 1, 15)
        assert parse_pubmed_date("2023 Spring") == (2023,)

    def test_extract_date_shapes(self):
        assert extract_date({"date-parts": [[2013, 8]]}) == (2013, 8)
        assert extract_date([2013, 7, 31]) == (2013, 7, 31)
        assert extract_date({"year": 2001, "month": "March"}) == (2001, 3)
        assert extract_date(1999) == (1999,)
        assert extract_date(date(2024, 3, 15)) == (2024, 3, 15)
        assert extract_date(None) is None
        assert extract_date({"date-parts": []}) is None


class TestText:
    """Tests for text cleanup helpers."""

    def test_strip_tags(self):
        assert strip_tags("<jats:p>Hello &amp; <i>world</i></jats:p>") == "Hello & world"

    def test_strip_tags_with_separator(self):
        assert strip_tags("<p>One</p><p>Two</p>", sep=" ") == "One Two"
