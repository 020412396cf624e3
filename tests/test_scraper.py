from __future__ import annotations

import asyncio

from app.services.fetcher import PageFetcher
from app.services.scraper import ListScraper

from fakes import IMDB, FakeUpstream, list_page

LIST_URL = f"{IMDB}/list/ls1000001/"
DETAIL = "www.imdb.com/list/ls1000001/?mode=detail"
GRID = "www.imdb.com/list/ls1000001/?mode=grid"
COMPACT = "www.imdb.com/list/ls1000001/?mode=compact"


def _scrape(upstream: FakeUpstream, *, page_limit: int = 80) -> list[str]:
    async def runner() -> list[str]:
        async with upstream.client() as client:
            scraper = ListScraper(
                PageFetcher(client, delay_seconds=0),
                base_url=IMDB,
                page_limit=page_limit,
                page_delay=0,
            )
            return await scraper.scrape_list(LIST_URL)

    return asyncio.run(runner())


def test_follows_next_links_until_nothing_new() -> None:
    upstream = FakeUpstream(
        pages={
            DETAIL: list_page(
                ["tt0000001", "tt0000002"],
                next_href="/list/ls1000001/?mode=detail&page=2",
            ),
            f"{DETAIL}&page=2": list_page(
                ["tt0000002", "tt0000003"],
                next_href="/list/ls1000001/?mode=detail&page=1",
            ),
            # The last page links back to the first one.
            f"{DETAIL}&page=1": list_page(
                ["tt0000001", "tt0000002"],
                next_href="/list/ls1000001/?mode=detail&page=2",
            ),
        }
    )

    assert _scrape(upstream) == ["tt0000001", "tt0000002", "tt0000003"]
    assert upstream.count("mode=detail") == 3
    assert upstream.count("mode=grid") == 0


def test_page_limit_caps_pagination() -> None:
    upstream = FakeUpstream(
        pages={
            DETAIL: list_page(
                ["tt0000001"], next_href="/list/ls1000001/?mode=detail&page=2"
            ),
            f"{DETAIL}&page=2": list_page(
                ["tt0000002"], next_href="/list/ls1000001/?mode=detail&page=3"
            ),
            f"{DETAIL}&page=3": list_page(["tt0000003"]),
        }
    )

    assert _scrape(upstream, page_limit=2) == ["tt0000001", "tt0000002"]


def test_falls_back_to_next_layout_mode_when_empty() -> None:
    upstream = FakeUpstream(
        pages={
            DETAIL: list_page([]),
            GRID: list_page(["tt1234567", "tt7654321"]),
            COMPACT: list_page(["tt0000009"]),
        }
    )

    assert _scrape(upstream) == ["tt1234567", "tt7654321"]
    assert upstream.count("mode=compact") == 0


def test_fetch_error_aborts_only_the_current_mode() -> None:
    upstream = FakeUpstream(
        pages={
            DETAIL: 503,
            GRID: 500,
            COMPACT: list_page(["tt0000042"]),
        }
    )

    assert _scrape(upstream) == ["tt0000042"]


def test_returns_empty_list_when_every_mode_fails() -> None:
    upstream = FakeUpstream()

    assert _scrape(upstream) == []
    assert upstream.count("/list/ls1000001/") == 3


def test_ids_from_title_links_and_attributes_are_merged_in_order() -> None:
    html = (
        '<a href="/title/tt0000005/">five</a>'
        '<div data-tconst="tt0000006"></div>'
        '<a href="/title/tt0000006/?ref_=x">six again</a>'
    )
    upstream = FakeUpstream(pages={DETAIL: html})

    # Attribute matches come first, then title links not seen yet.
    assert _scrape(upstream) == ["tt0000006", "tt0000005"]
