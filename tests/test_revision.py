from __future__ import annotations

from app.context import CacheContext
from app.models import ListRecord, Preferences
from app.revision import RevisionTracker, catalog_fingerprint


def _context() -> CacheContext:
    context = CacheContext.create(metadata_cache_size=100)
    context.lists = {
        "ls1000001": ListRecord(id="ls1000001", name="Alpha", url="u1", ids=["tt0000001"]),
        "ls1000002": ListRecord(id="ls1000002", name="Beta", url="u2"),
    }
    context.revision.prime(context.fingerprint(), value=4)
    return context


def test_fingerprint_layout() -> None:
    lists = {"ls1000001": ListRecord(id="ls1000001", name="Alpha", url="u")}
    prefs = Preferences(
        order=["ls1000001"],
        default_list="ls1000001",
        per_list_sort={"ls1000001": "name_asc"},
        custom_order={"ls1000001": ["tt0000001"]},
    )

    assert catalog_fingerprint(lists, prefs) == (
        'ls1000001#ls1000001#ls1000001#Alpha#{"ls1000001": "name_asc"}#{}#c1#a2#r2'
    )


def test_enabled_change_bumps_exactly_once() -> None:
    context = _context()
    context.prefs.enabled = ["ls1000002"]

    assert context.refresh_revision() is True
    assert context.revision.value == 5
    assert context.refresh_revision() is False
    assert context.revision.value == 5


def test_resaving_identical_preferences_does_not_bump() -> None:
    context = _context()
    context.prefs = Preferences.model_validate(context.prefs.model_dump(by_alias=True))

    assert context.refresh_revision() is False
    assert context.revision.value == 4


def test_item_changes_do_not_change_the_shape() -> None:
    context = _context()
    context.lists["ls1000001"].ids.append("tt0000002")

    assert context.refresh_revision() is False


def test_force_bump_records_the_fingerprint() -> None:
    tracker = RevisionTracker(value=2)

    assert tracker.force_bump("shape") == 3
    assert tracker.observe("shape") is False
    assert tracker.value == 3


def test_value_never_drops_below_one() -> None:
    tracker = RevisionTracker(value=0)
    tracker.prime("x", value=-5)

    assert tracker.value == 1
