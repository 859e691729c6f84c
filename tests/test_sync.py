"""
Tests for the sync orchestrator: source selection, fallback, mirroring, writes.
"""

import asyncio

import pytest

from flipdeck.core.connectivity import ConnectivityState, ConnectivityWatcher
from flipdeck.core.editor import edit_details, remove_card
from flipdeck.core.sync import SyncOrchestrator
from flipdeck.exceptions import RemoteError, SetValidationError
from flipdeck.models.flashcards import FlashcardSet


@pytest.fixture
def orchestrator(stub_remote, offline_cache, backup_cache, connectivity):
    return SyncOrchestrator(
        stub_remote,
        offline_cache,
        connectivity,
        load_timeout=0.2,
        refresh_timeout=0.1,
        backup=backup_cache,
    )


class TestLoad:
    def test_online_load_uses_remote_and_mirrors(
        self, orchestrator, stub_remote, offline_cache, set_factory
    ):
        s = set_factory("Capitals")
        stub_remote.sets[s.id] = s

        sets = asyncio.run(orchestrator.load())

        assert sets == [s]
        assert orchestrator.sets == [s]
        assert offline_cache.list() == [s]

    def test_mirroring_replaces_stale_cache(
        self, orchestrator, stub_remote, offline_cache, set_factory
    ):
        offline_cache.upsert(set_factory("Gone remotely"))
        fresh = set_factory("Fresh")
        stub_remote.sets[fresh.id] = fresh

        asyncio.run(orchestrator.load())

        assert [s.title for s in offline_cache.list()] == ["Fresh"]

    def test_timeout_falls_back_to_cache(
        self, orchestrator, stub_remote, offline_cache, connectivity, set_factory
    ):
        offline_cache.upsert(set_factory("Old Set"))
        stub_remote.sets["x"] = set_factory("Remote Only", id="x")
        stub_remote.delay = 1.0

        sets = asyncio.run(orchestrator.load())

        assert [s.title for s in sets] == ["Old Set"]
        assert connectivity.is_online
        assert not orchestrator.is_loading

    def test_remote_error_falls_back_to_cache(
        self, orchestrator, stub_remote, offline_cache, connectivity, set_factory
    ):
        offline_cache.upsert(set_factory("Old Set"))
        stub_remote.error = RemoteError("boom", status=500)

        sets = asyncio.run(orchestrator.refresh())

        assert [s.title for s in sets] == ["Old Set"]
        assert connectivity.is_online

    def test_unexpected_error_falls_back_to_cache(
        self, orchestrator, stub_remote, offline_cache, set_factory
    ):
        offline_cache.upsert(set_factory("Old Set"))
        stub_remote.error = KeyError("surprise")

        assert [s.title for s in asyncio.run(orchestrator.load())] == ["Old Set"]

    def test_failed_read_leaves_cache_untouched(
        self, orchestrator, stub_remote, offline_cache, set_factory
    ):
        kept = set_factory("Kept")
        offline_cache.upsert(kept)
        stub_remote.error = RemoteError("boom")

        asyncio.run(orchestrator.load())

        assert offline_cache.list() == [kept]

    def test_offline_skips_remote(self, orchestrator, stub_remote, offline_cache, set_factory):
        offline_cache.upsert(set_factory("Cached"))
        orchestrator.connectivity = ConnectivityState(online=False)

        sets = asyncio.run(orchestrator.load())

        assert [s.title for s in sets] == ["Cached"]
        assert stub_remote.list_calls == 0

    def test_offline_with_no_cache_is_empty(self, orchestrator):
        orchestrator.connectivity = ConnectivityState(online=False)
        assert asyncio.run(orchestrator.load()) == []

    def test_is_loading_while_in_flight(self, orchestrator, stub_remote):
        stub_remote.delay = 0.05
        observed = []

        async def scenario():
            task = asyncio.create_task(orchestrator.load())
            await asyncio.sleep(0)
            observed.append(orchestrator.is_loading)
            await task
            observed.append(orchestrator.is_loading)

        asyncio.run(scenario())
        assert observed == [True, False]

    def test_sets_property_is_a_copy(self, orchestrator, stub_remote, set_factory):
        s = set_factory()
        stub_remote.sets[s.id] = s
        asyncio.run(orchestrator.load())

        orchestrator.sets.clear()
        assert orchestrator.sets == [s]


class TestGetSet:
    def test_online_reads_remote(self, orchestrator, stub_remote, set_factory):
        s = set_factory()
        stub_remote.sets[s.id] = s
        assert asyncio.run(orchestrator.get_set(s.id)) == s

    def test_failure_falls_back_to_offline_then_backup(
        self, orchestrator, stub_remote, offline_cache, backup_cache, set_factory
    ):
        in_offline, in_backup = set_factory("Offline"), set_factory("Backup")
        offline_cache.upsert(in_offline)
        backup_cache.upsert(in_backup)
        stub_remote.error = RemoteError("down")

        assert asyncio.run(orchestrator.get_set(in_offline.id)) == in_offline
        assert asyncio.run(orchestrator.get_set(in_backup.id)) == in_backup
        assert asyncio.run(orchestrator.get_set("missing")) is None

    def test_absent_remotely_is_none(self, orchestrator):
        assert asyncio.run(orchestrator.get_set("missing")) is None

    def test_unexpected_error_falls_back_to_caches(
        self, orchestrator, stub_remote, offline_cache, backup_cache, set_factory
    ):
        in_offline, in_backup = set_factory("Offline"), set_factory("Backup")
        offline_cache.upsert(in_offline)
        backup_cache.upsert(in_backup)
        stub_remote.error = KeyError("surprise")

        assert asyncio.run(orchestrator.get_set(in_offline.id)) == in_offline
        assert asyncio.run(orchestrator.get_set(in_backup.id)) == in_backup


class TestWrites:
    def test_save_stamps_and_mirrors(self, orchestrator, stub_remote, offline_cache, set_factory):
        s = set_factory(created_at=1_000)

        stored = asyncio.run(orchestrator.save_set(s))

        assert stored.updated_at > s.updated_at
        assert stub_remote.saved == [stored]
        assert offline_cache.get(s.id) == stored
        assert orchestrator.sets == [stored]

    def test_save_replaces_existing_entry_in_place(self, orchestrator, stub_remote, set_factory):
        a, b = set_factory("A"), set_factory("B")
        stub_remote.sets.update({a.id: a, b.id: b})
        asyncio.run(orchestrator.load())
        before = [s.id for s in orchestrator.sets]

        asyncio.run(orchestrator.save_set(a.model_copy(update={"title": "A2"})))

        assert [s.id for s in orchestrator.sets] == before
        assert {s.title for s in orchestrator.sets} == {"A2", "B"}

    def test_failed_save_raises_but_keeps_local_copy(
        self, orchestrator, stub_remote, offline_cache, set_factory
    ):
        stub_remote.error = RemoteError("down", status=503)
        s = set_factory("Offline edit")

        with pytest.raises(RemoteError):
            asyncio.run(orchestrator.save_set(s))

        assert offline_cache.get(s.id).title == "Offline edit"
        assert [x.id for x in orchestrator.sets] == [s.id]

    def test_blank_title_is_rejected_before_any_write(
        self, orchestrator, stub_remote, offline_cache
    ):
        with pytest.raises(SetValidationError):
            asyncio.run(orchestrator.save_set(FlashcardSet(title="   ")))
        assert stub_remote.saved == []
        assert offline_cache.list() == []

    def test_delete_removes_everywhere(
        self, orchestrator, stub_remote, offline_cache, set_factory
    ):
        s = set_factory()
        stub_remote.sets[s.id] = s
        asyncio.run(orchestrator.load())

        asyncio.run(orchestrator.delete_set(s.id))

        assert s.id not in stub_remote.sets
        assert orchestrator.sets == []
        assert offline_cache.list() == []

    def test_failed_delete_still_removes_locally(
        self, orchestrator, stub_remote, offline_cache, set_factory
    ):
        s = set_factory()
        offline_cache.upsert(s)
        stub_remote.error = RemoteError("down")

        with pytest.raises(RemoteError):
            asyncio.run(orchestrator.delete_set(s.id))
        assert offline_cache.get(s.id) is None


class TestEditing:
    def test_title_change_replaces_stored_set(
        self, orchestrator, stub_remote, offline_cache, set_factory
    ):
        original = set_factory("Capitals", n_cards=2)
        stub_remote.sets[original.id] = original
        asyncio.run(orchestrator.load())

        stored = asyncio.run(
            orchestrator.save_set(edit_details(original, title="European capitals"))
        )

        assert stored.id == original.id
        assert stored.created_at == original.created_at
        assert stub_remote.sets[original.id].title == "European capitals"
        assert [s.title for s in orchestrator.sets] == ["European capitals"]
        assert offline_cache.get(original.id).title == "European capitals"

    def test_removed_card_is_gone_everywhere(
        self, orchestrator, stub_remote, offline_cache, set_factory
    ):
        original = set_factory(n_cards=3)
        stub_remote.sets[original.id] = original
        dropped = original.cards[1]

        asyncio.run(orchestrator.save_set(remove_card(original, dropped.id)))

        remote_ids = [c.id for c in stub_remote.sets[original.id].cards]
        assert remote_ids == [original.cards[0].id, original.cards[2].id]
        assert dropped.id not in [c.id for c in offline_cache.get(original.id).cards]


class TestInspectAndConnectivity:
    def test_inspect_sources(
        self, orchestrator, stub_remote, offline_cache, backup_cache, set_factory
    ):
        stub_remote.sets.update({"a": set_factory(id="a"), "b": set_factory(id="b")})
        offline_cache.upsert(set_factory("Offline"))
        backup_cache.upsert(set_factory("Backup"))

        report = asyncio.run(orchestrator.inspect_sources())

        assert report.remote_count == 2
        assert report.remote_error is None
        assert [s.title for s in report.offline_sets] == ["Offline"]
        assert [s.title for s in report.backup_sets] == ["Backup"]

    def test_inspect_reports_remote_error(self, orchestrator, stub_remote):
        stub_remote.error = RemoteError("down")
        report = asyncio.run(orchestrator.inspect_sources())
        assert report.remote_count is None
        assert "down" in report.remote_error

    def test_inspect_reports_unexpected_error(
        self, orchestrator, stub_remote, offline_cache, set_factory
    ):
        offline_cache.upsert(set_factory("Offline"))
        stub_remote.error = KeyError("surprise")

        report = asyncio.run(orchestrator.inspect_sources())

        assert report.remote_count is None
        assert "KeyError" in report.remote_error
        assert [s.title for s in report.offline_sets] == ["Offline"]

    def test_reloads_on_transition_until_stopped(self, orchestrator, stub_remote, connectivity):
        watcher = ConnectivityWatcher(connectivity)

        async def scenario():
            orchestrator.start()
            watcher.report(False)
            await asyncio.sleep(0)
            watcher.report(True)
            await asyncio.sleep(0)
            await orchestrator.stop()
            calls_after_stop = stub_remote.list_calls
            watcher.report(False)
            watcher.report(True)
            await asyncio.sleep(0)
            return calls_after_stop

        calls_after_stop = asyncio.run(scenario())
        # One reload per transition; the offline one reads the cache only
        assert calls_after_stop == 1
        assert stub_remote.list_calls == 1
        assert connectivity.subscriber_count == 0


def test_offline_save_keeps_newest_first_across_reloads(
    orchestrator, stub_remote, offline_cache, set_factory
):
    offline_cache.upsert(set_factory("Existing", created_at=1_000))
    orchestrator.connectivity = ConnectivityState(online=False)
    stub_remote.error = RemoteError("offline")
    asyncio.run(orchestrator.load())

    with pytest.raises(RemoteError):
        asyncio.run(orchestrator.save_set(set_factory("Made offline")))
    in_memory = [s.title for s in orchestrator.sets]
    reloaded = [s.title for s in asyncio.run(orchestrator.load())]

    assert in_memory == reloaded == ["Made offline", "Existing"]
