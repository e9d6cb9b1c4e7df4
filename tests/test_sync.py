import asyncio

from biasbrief.storage.backends import JsonFileStorage
from biasbrief.storage.preferences import PreferenceStore
from biasbrief.storage.sync import PreferencePoller


def _stores(tmp_path):
    path = tmp_path / "preferences.json"
    return PreferenceStore(JsonFileStorage(path)), PreferenceStore(JsonFileStorage(path))


def test_poll_once_reports_external_changes(tmp_path):
    viewer, editor = _stores(tmp_path)
    seen = []
    poller = PreferencePoller(viewer, lambda name, value: seen.append((name, value)))
    poller.prime()

    assert poller.poll_once() == []

    editor.save_preferred_categories(["Sport"])
    assert poller.poll_once() == ["preferred_categories"]
    assert seen == [("preferred_categories", ["Sport"])]

    assert poller.poll_once() == []


def test_poller_watches_selected_fields(tmp_path):
    viewer, editor = _stores(tmp_path)
    seen = []
    poller = PreferencePoller(viewer, lambda name, value: seen.append(name), fields=("theme", "bookmarks"))
    poller.prime()

    editor.save_theme("dark")
    editor.save_preferred_categories(["Sport"])
    editor.add_bookmark("9")

    assert poller.poll_once() == ["theme", "bookmarks"]
    assert seen == ["theme", "bookmarks"]


def test_background_polling(tmp_path):
    viewer, editor = _stores(tmp_path)
    seen = []

    async def scenario():
        poller = PreferencePoller(viewer, lambda name, value: seen.append(value), interval=0.01)
        poller.start()
        assert poller.running

        editor.save_preferred_categories(["News"])
        await asyncio.sleep(0.1)

        await poller.stop()
        assert not poller.running

    asyncio.run(scenario())
    assert seen == [["News"]]
