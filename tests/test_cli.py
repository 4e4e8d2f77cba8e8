"""Tests for the command line interface."""

import json

import pytest

import cachesync.__main__ as cli
from cachesync.fetcher import LocalFileFetcher
from tests.conftest import GOLDEN_DIR


@pytest.fixture
def golden_fetcher(monkeypatch: pytest.MonkeyPatch) -> None:
    """Serve searches from the golden files instead of geocaching.com."""
    monkeypatch.setattr(cli, "_create_fetcher", lambda settings: LocalFileFetcher(GOLDEN_DIR))


@pytest.fixture
def credentials(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("GEOCACHING_USERNAME", "cacher")
    monkeypatch.setenv("GEOCACHING_PASSWORD", "secret")


class TestSync:
    """Tests for the sync command."""

    def test_missing_settings(self, capsys: pytest.CaptureFixture[str]) -> None:
        """Missing credentials are reported and the command fails."""
        assert cli.main(["sync"]) == 1
        assert "GEOCACHING_USERNAME must be set" in capsys.readouterr().err

    def test_unknown_region(
        self, credentials: None, capsys: pytest.CaptureFixture[str]
    ) -> None:
        """An unknown region fails without searching."""
        assert cli.main(["sync", "--region", "99", "--dry-run"]) == 1
        assert "Unknown region ID: 99" in capsys.readouterr().err

    def test_dry_run_region(
        self,
        credentials: None,
        golden_fetcher: None,
        capsys: pytest.CaptureFixture[str],
    ) -> None:
        """A dry run reports what would change."""
        assert cli.main(["sync", "--region", "54", "--dry-run"]) == 0
        assert "Queensland: 3 added, 0 updated, 0 unchanged, 1 skipped" in (
            capsys.readouterr().out
        )


class TestSearch:
    """Tests for the search command."""

    def test_prints_json(
        self, golden_fetcher: None, capsys: pytest.CaptureFixture[str]
    ) -> None:
        """Results are printed as a JSON array."""
        assert cli.main(["search"]) == 0
        body = json.loads(capsys.readouterr().out)
        assert [c["code"] for c in body] == ["GC1AAAA", "GC2BBBB", "GC3CCCC", "GC4DDDD"]

    def test_unsolved(
        self, golden_fetcher: None, capsys: pytest.CaptureFixture[str]
    ) -> None:
        """--unsolved drops bonus caches."""
        assert cli.main(["search", "--unsolved"]) == 0
        body = json.loads(capsys.readouterr().out)
        assert [c["code"] for c in body] == ["GC1AAAA", "GC2BBBB", "GC4DDDD"]
