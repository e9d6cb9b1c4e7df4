import asyncio
import json

import pytest

import biasbrief.main
from biasbrief.main import main, open_storage, parse_args
from biasbrief.storage.backends import JsonFileStorage


@pytest.fixture
def prefs_file(tmp_path):
    return tmp_path / "preferences.json"


def run(prefs_file, *args):
    return asyncio.run(main(["--local", "--preferences", str(prefs_file), *args]))


def test_parse_args_defaults():
    args = parse_args([])

    assert args.category == "All"
    assert args.page == 1
    assert args.sort == "new-to-old"
    assert not args.bookmarks_only


def test_parse_args_rejects_both_headline_modes():
    with pytest.raises(SystemExit):
        parse_args(["--biased", "--unbiased"])


def test_browse_category(prefs_file, capsys):
    assert run(prefs_file, "--category", "Sport") == 0

    out = capsys.readouterr().out
    assert "[1003]" in out
    assert "[1010]" in out
    assert "[1001]" not in out
    assert "2 articles" in out


def test_browse_records_visit(prefs_file):
    run(prefs_file)
    assert "bias-brief-last-visited" in json.loads(prefs_file.read_text())


def test_browse_paging_and_page_size(prefs_file, capsys):
    assert run(prefs_file, "--per-page", "5", "--page", "3") == 0

    out = capsys.readouterr().out
    assert "Page 3 of 3 (12 articles)" in out
    # Unparsable dates sort last
    assert "[1011]" in out
    assert json.loads(prefs_file.read_text())["bias-brief-articles-per-page"] == "5"


def test_headline_modes(prefs_file, capsys):
    run(prefs_file, "--category", "Sport", "--biased")
    biased = capsys.readouterr().out
    run(prefs_file, "--category", "Sport", "--unbiased")
    unbiased = capsys.readouterr().out

    assert biased != unbiased


def test_bookmarks_flow(prefs_file, capsys):
    assert run(prefs_file, "--bookmark", "1004") == 0
    assert "Bookmarked 1004" in capsys.readouterr().out

    run(prefs_file, "--bookmarks-only")
    out = capsys.readouterr().out
    assert "Bookmarks" in out
    assert "* [1004]" in out
    assert "[1001]" not in out

    assert run(prefs_file, "--unbookmark", "1004") == 0
    run(prefs_file, "--bookmarks-only")
    assert "No articles found." in capsys.readouterr().out


def test_custom_feed_with_preferred(prefs_file, capsys):
    run(prefs_file, "--custom", "--preferred", "Sport")

    out = capsys.readouterr().out
    assert "My news (Sport)" in out
    assert "[1003]" in out
    assert "[1004]" not in out


def test_list_categories(prefs_file, capsys):
    assert run(prefs_file, "--categories") == 0

    lines = capsys.readouterr().out.splitlines()
    assert lines[0] == "All"
    assert "Sport" in lines


def test_preferences_default_to_the_local_file(prefs_file):
    storage = open_storage(parse_args(["--preferences", str(prefs_file)]))

    assert isinstance(storage, JsonFileStorage)
    assert storage.path == prefs_file


def test_profile_flag_uses_firestore_profile(monkeypatch):
    opened = []

    class FakeProfileStorage:
        def __init__(self, user_id):
            opened.append(user_id)

    monkeypatch.setattr(biasbrief.main, "FirestoreProfileStorage", FakeProfileStorage)

    storage = open_storage(parse_args(["--profile", "user-1"]))

    assert isinstance(storage, FakeProfileStorage)
    assert opened == ["user-1"]
