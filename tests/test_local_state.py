"""
Tests for the local state store.
"""

from debrief_sync.keys import ConfigName, KeyKind, categories_address, config_address, review_address, tasks_address
from debrief_sync.models.catalog import DEFAULT_DEPARTMENT, DEFAULT_PERIODS
from debrief_sync.models.records import ReviewRecord, Task, TaskStatus
from debrief_sync.store.local_state import SaveStatus


LIGHTING = review_address("peep", "2024", "production", "Main Stage", "lighting")


class TestLocalStateStore:
    """Test reads, replacement writes and listeners."""

    def test_typed_defaults(self, store):
        assert store.get(LIGHTING) == ReviewRecord()
        assert store.get(tasks_address("peep", "2026", "production", "Main Stage")) == []
        assert store.get(categories_address("peep", "2024", "production", "Main Stage")) is None
        assert store.get(config_address("peep", ConfigName.PERIODS)) == list(DEFAULT_PERIODS)
        assert store.get(config_address("peep", ConfigName.DEPARTMENTS)) == [DEFAULT_DEPARTMENT]

    def test_put_replaces_and_copies(self, store):
        record = ReviewRecord(votes={"Sam": 3})
        store.put(LIGHTING, record)
        record.votes["Ana"] = 1

        stored = store.get(LIGHTING)
        assert stored.votes == {"Sam": 3}
        stored.votes["Lee"] = 5
        assert store.get(LIGHTING).votes == {"Sam": 3}

    def test_list_items_are_copied(self, store):
        address = tasks_address("peep", "2026", "production", "Main Stage")
        store.put(address, [Task(id="t1", label="Rig truss", assignees=["Sam"])])

        tasks = store.get(address)
        tasks[0].label = "Changed"
        tasks[0].assignees.append("Ana")
        assert store.get(address) == [Task(id="t1", label="Rig truss", assignees=["Sam"])]

        _, listed = next(store.items(KeyKind.TASKS))
        listed[0].status = TaskStatus.DONE
        assert store.get(address)[0].status == TaskStatus.NOT_STARTED

    def test_listeners_get_kind_and_key(self, store):
        seen = []
        store.add_listener(lambda kind, key: seen.append((kind, key)))
        store.put(LIGHTING, ReviewRecord())
        store.reset(LIGHTING)
        store.reset(LIGHTING)
        assert seen == [(KeyKind.REVIEW, LIGHTING.key), (KeyKind.REVIEW, LIGHTING.key)]

    def test_failing_listener_does_not_block_others(self, store):
        seen = []

        def broken(kind, key):
            raise RuntimeError("boom")

        store.add_listener(broken)
        store.add_listener(lambda kind, key: seen.append(key))
        store.put(LIGHTING, ReviewRecord())
        assert seen == [LIGHTING.key]

    def test_reset_stored_none(self, store):
        address = categories_address("peep", "2024", "production", "Bar")
        store.put(address, None)
        assert store.has(address)
        store.reset(address)
        assert not store.has(address)

    def test_items_by_kind(self, store):
        tasks = tasks_address("peep", "2026", "production", "Bar")
        store.put(tasks, [Task("a", "A")])
        store.put(LIGHTING, ReviewRecord())
        assert [address for address, _ in store.items(KeyKind.TASKS)] == [tasks]


class TestSaveStatus:
    """Test per-key and aggregate status."""

    def test_aggregate_priority(self, store):
        assert store.aggregate_status() == SaveStatus.IDLE
        store.set_status("a", SaveStatus.SAVED)
        assert store.aggregate_status() == SaveStatus.SAVED
        store.set_status("b", SaveStatus.ERROR)
        assert store.aggregate_status() == SaveStatus.ERROR
        store.set_status("c", SaveStatus.SAVING)
        assert store.aggregate_status() == SaveStatus.SAVING
        store.set_status("c", SaveStatus.IDLE)
        assert store.status("c") == SaveStatus.IDLE
        assert store.aggregate_status() == SaveStatus.ERROR

    def test_pending(self, store):
        store.mark_pending("k")
        assert store.is_pending("k")
        store.clear_pending("k")
        assert store.pending_keys == set()
