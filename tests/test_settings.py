"""Configuration settings behaviour tests."""

from __future__ import annotations

from app.config import Settings


def test_list_ids_are_split_and_validated() -> None:
    """Comma or space separated ids are parsed and invalid ones dropped."""

    settings = Settings(_env_file=None, IMDB_LIST_IDS="ls1000001, bogus ls1000002,ls1000001")

    assert settings.imdb_list_ids == ("ls1000001", "ls1000002")


def test_list_ids_from_environment_are_not_json_decoded(monkeypatch) -> None:
    monkeypatch.setenv("IMDB_LIST_IDS", "ls1000001,ls1000002")

    settings = Settings(_env_file=None)

    assert settings.imdb_list_ids == ("ls1000001", "ls1000002")


def test_cinemeta_alias_sets_metadata_url() -> None:
    settings = Settings(_env_file=None, CINEMETA_API_URL="https://cinemeta.example")

    assert str(settings.metadata_addon_url).startswith("https://cinemeta.example")


def test_defaults_and_derived_values() -> None:
    settings = Settings(_env_file=None, IMDB_SYNC_MINUTES=0, PAGE_DELAY_MS=250)

    assert settings.sync_interval_seconds == 0
    assert settings.page_delay_seconds == 0.25
    assert settings.snapshot_backend == "file"
    assert settings.upgrade_episodes is True
    assert settings.imdb_list_ids == ()
    assert settings.admin_password is None


def test_blank_optional_strings_become_none() -> None:
    settings = Settings(_env_file=None, IMDB_USER_URL="   ", SHARED_SECRET="")

    assert settings.imdb_user_url is None
    assert settings.shared_secret is None


def test_list_ids_are_normalized_to_lower_case_prefixes() -> None:
    settings = Settings(_env_file=None, IMDB_LIST_IDS="LS1000001, ls1000001 Ls2000002")

    assert settings.imdb_list_ids == ("ls1000001", "ls2000002")
