from __future__ import annotations

from pathlib import Path
from typing import Iterator

import pytest
from alembic.config import Config
from sqlalchemy import create_engine, inspect

from habla.config import Settings, get_settings
from scripts import run_migrations as runner


@pytest.fixture()
def sqlite_settings(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> Iterator[str]:
    url = f"sqlite:///{tmp_path / 'progress.db'}"
    monkeypatch.setenv("HABLA_DATABASE_URL", url)
    get_settings.cache_clear()
    yield url
    get_settings.cache_clear()


def test_build_config_points_at_backend_scripts() -> None:
    config = runner.build_config("postgresql://habla:p%40ss@db/habla")

    assert config.get_main_option("sqlalchemy.url") == "postgresql://habla:p%40ss@db/habla"
    assert config.get_main_option("script_location") == str(runner.BACKEND_ROOT / "alembic")


def test_upgrade_creates_progress_table(sqlite_settings: str) -> None:
    runner.upgrade("head")

    engine = create_engine(sqlite_settings)
    try:
        assert "progress_records" in inspect(engine).get_table_names()
    finally:
        engine.dispose()


def test_upgrade_skips_connection_check_for_sqlite(monkeypatch: pytest.MonkeyPatch, sqlite_settings: str) -> None:
    recorded: dict[str, object] = {}

    def fail_check(url: str) -> None:
        raise AssertionError(f"unexpected connection check for {url}")

    def fake_upgrade(cfg: Config, revision: str, sql: bool = False) -> None:
        recorded["url"] = cfg.get_main_option("sqlalchemy.url")
        recorded["revision"] = revision

    monkeypatch.setattr(runner, "check_connection", fail_check)
    monkeypatch.setattr(runner.command, "upgrade", fake_upgrade)

    runner.upgrade("20261018_01_progress_records")

    assert recorded == {"url": sqlite_settings, "revision": "20261018_01_progress_records"}


def test_upgrade_checks_server_database_first(monkeypatch: pytest.MonkeyPatch) -> None:
    calls: list[str] = []
    settings = Settings(HABLA_DATABASE_URL="postgresql://habla@db/habla")

    monkeypatch.setattr(runner, "check_connection", lambda url: calls.append(f"check {url}"))
    monkeypatch.setattr(runner.command, "upgrade", lambda cfg, revision, sql=False: calls.append("upgrade"))

    runner.upgrade(settings=settings)

    assert calls == ["check postgresql://habla@db/habla", "upgrade"]


def test_upgrade_requires_database_url() -> None:
    with pytest.raises(RuntimeError):
        runner.upgrade(settings=Settings(HABLA_DATABASE_URL=""))


def test_main_reports_failure(monkeypatch: pytest.MonkeyPatch) -> None:
    def broken(*_: object, **__: object) -> None:
        raise RuntimeError("database refused connections")

    monkeypatch.setattr(runner, "upgrade", broken)
    monkeypatch.setattr(runner, "configure_logging", lambda: None)

    assert runner.main(["--revision", "head"]) == 1
