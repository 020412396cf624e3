from __future__ import annotations

import pytest

from app.errors import InvalidIdentifier
from app.identifiers import (
    clean_item_ids,
    clean_list_ids,
    find_item_id,
    find_list_id,
    is_item_id,
    is_list_id,
    require_item_id,
    require_list_id,
)


@pytest.mark.parametrize(
    ("value", "expected"),
    [
        ("tt1234567", True),
        ("TT1234567", True),
        ("tt123456", False),
        ("tt12345678", True),
        ("tt1234567\n", False),
        (" tt1234567", False),
        ("ls1234567", False),
        (1234567, False),
        (None, False),
    ],
)
def test_is_item_id_boundaries(value, expected: bool) -> None:
    assert is_item_id(value) is expected


@pytest.mark.parametrize(
    ("value", "expected"),
    [
        ("ls123456", True),
        ("LS123456", True),
        ("ls12345", False),
        ("ls123456x", False),
        ("tt1234567", False),
    ],
)
def test_is_list_id_boundaries(value: str, expected: bool) -> None:
    assert is_list_id(value) is expected


def test_find_helpers_extract_from_urls() -> None:
    assert find_item_id("https://www.imdb.com/title/TT0111161/?ref_=x") == "tt0111161"
    assert find_list_id("https://www.imdb.com/list/ls004285275/") == "ls004285275"
    assert find_list_id("https://www.imdb.com/title/tt0111161/") is None


def test_require_helpers_raise_invalid_identifier() -> None:
    assert require_item_id("tt0111161") == "tt0111161"
    assert require_list_id("ls004285275") == "ls004285275"
    with pytest.raises(InvalidIdentifier):
        require_item_id("tt01")
    with pytest.raises(ValueError):
        require_list_id("list-1")


def test_clean_item_ids_keeps_first_occurrence() -> None:
    assert clean_item_ids(["tt0000002", "junk", "tt0000001", "tt0000002"]) == [
        "tt0000002",
        "tt0000001",
    ]
    assert clean_item_ids("tt0000001") == []


def test_mixed_case_ids_are_normalized_and_deduplicated() -> None:
    assert require_item_id("TT0111161") == "tt0111161"
    assert require_list_id("LS004285275") == "ls004285275"
    assert clean_item_ids(["tt0000001", "TT0000001", "Tt0000002"]) == [
        "tt0000001",
        "tt0000002",
    ]
    assert clean_list_ids(["LS1000001", "ls1000001"]) == ["ls1000001"]
