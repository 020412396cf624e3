from __future__ import annotations

import asyncio

from app.models import Preferences, SourceRefs
from app.services.discovery import SourceDiscoverer
from app.services.fetcher import PageFetcher

from fakes import IMDB, FakeUpstream

USER_URL = f"{IMDB}/user/ur0000001/lists/"

USER_PAGE = """
<html><body>
  <a href="/list/ls1000001/">First</a>
  <a href="https://www.imdb.com/list/LS1000002/">Second</a>
  <a href="/list/ls1000001/">First again</a>
</body></html>
"""


def _discoverer(client) -> SourceDiscoverer:
    return SourceDiscoverer(PageFetcher(client, delay_seconds=0), base_url=IMDB, source_delay=0)


def test_discover_collects_lists_with_names() -> None:
    upstream = FakeUpstream(
        pages={
            "www.imdb.com/user/ur0000001/lists/": USER_PAGE,
            "www.imdb.com/list/ls1000001/": (
                '<h1 data-testid="list-header-title">Weekend &amp; Chill</h1>'
            ),
            "www.imdb.com/list/ls1000002/": "<title>Noir Classics - IMDb</title>",
        }
    )

    async def runner():
        async with upstream.client() as client:
            return await _discoverer(client).discover(USER_URL)

    references = asyncio.run(runner())

    assert [(ref.id, ref.name) for ref in references] == [
        ("ls1000001", "Weekend & Chill"),
        ("ls1000002", "Noir Classics"),
    ]
    assert references[0].url == f"{IMDB}/list/ls1000001/"


def test_discover_falls_back_to_bare_paths_and_list_ids() -> None:
    upstream = FakeUpstream(
        pages={
            "www.imdb.com/user/ur0000001/lists/": (
                '<script>{"url": "/list/ls3000003/"}</script>'
            ),
        }
    )

    async def runner():
        async with upstream.client() as client:
            return await _discoverer(client).discover(USER_URL)

    references = asyncio.run(runner())

    # The name lookup 404s, so the id doubles as the name.
    assert [(ref.id, ref.name) for ref in references] == [("ls3000003", "ls3000003")]


def test_normalize_list_reference_accepts_ids_and_urls() -> None:
    discoverer = SourceDiscoverer(fetcher=None, base_url=IMDB)  # type: ignore[arg-type]

    by_id = discoverer.normalize_list_reference("ls1000001")
    by_url = discoverer.normalize_list_reference("https://m.imdb.com/list/LS1000002/?ref_=x")

    assert by_id is not None and by_id.url == f"{IMDB}/list/ls1000001/"
    assert by_url is not None and by_url.id == "ls1000002"
    assert discoverer.normalize_list_reference("not a list") is None
    assert discoverer.normalize_list_reference("") is None


def test_harvest_dedupes_and_drops_blocked_lists() -> None:
    upstream = FakeUpstream(
        pages={
            "www.imdb.com/user/ur0000001/lists/": USER_PAGE,
            "www.imdb.com/list/ls1000001/": "<title>First - IMDb</title>",
            "www.imdb.com/list/ls1000002/": "<title>Second - IMDb</title>",
            "www.imdb.com/list/ls1000003/": "<title>Third - IMDb</title>",
        }
    )
    prefs = Preferences(
        sources=SourceRefs(users=["https://www.imdb.com/user/ur0000404/lists/"], lists=["ls1000001"]),
        blocked=["ls1000002"],
    )

    async def runner():
        async with upstream.client() as client:
            return await _discoverer(client).harvest(
                prefs, user_url=USER_URL, static_list_ids=("ls1000003",)
            )

    references = asyncio.run(runner())

    assert sorted(ref.id for ref in references) == ["ls1000001", "ls1000003"]
    # The failing second user is skipped rather than aborting the harvest.
    assert upstream.count("ur0000404") == 1
