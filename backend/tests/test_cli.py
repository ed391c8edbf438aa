"""Tests for the maintenance CLI."""

import json

import pytest

from worldline.cli import main


def test_migrate_legacy_prints_report(capsys):
    assert main(["migrate-legacy", "--database", "world"]) == 0

    report = json.loads(capsys.readouterr().out)
    assert report["timelines_found"] == 0
    assert report["deleted_legacy_timeline_nodes"] is True


def test_keep_legacy(capsys):
    assert main(["migrate-legacy", "--database", "world", "--keep-legacy"]) == 0

    report = json.loads(capsys.readouterr().out)
    assert report["deleted_legacy_timeline_nodes"] is False


def test_invalid_database_name_fails():
    assert main(["migrate-legacy", "--database", "../escape"]) == 1


def test_database_is_required():
    with pytest.raises(SystemExit):
        main(["migrate-legacy"])
