"""Tests for work items, the work queue and processed history."""
import pytest

from lutwright.core.errors import ConfigError, StateTransitionError
from lutwright.core.types import (
    DitherMode,
    ProcessedRecord,
    RunParameters,
    WorkItem,
    WorkStatus,
)
from lutwright.queue import ProcessedHistory, WorkQueue


def make_item(name="a.jpg"):
    return WorkItem(source_path=f"in/{name}", dest_path=f"out/{name}")


def make_record(name):
    return ProcessedRecord(source_path=f"in/{name}", dest_path=f"out/{name}", parameters=RunParameters())


class TestWorkItem:
    """Tests for the item lifecycle."""

    def test_defaults(self):
        item = make_item()

        assert item.status is WorkStatus.WAITING
        assert item.progress == 0.0
        assert item.error_reason is None
        assert item.file_name == "a.jpg"
        assert len(item.id) == 12

    def test_ids_unique(self):
        assert make_item().id != make_item().id

    def test_with_status_returns_copy(self):
        item = make_item()
        processing = item.with_status(WorkStatus.PROCESSING, progress=0.5)

        assert item.status is WorkStatus.WAITING
        assert processing.status is WorkStatus.PROCESSING
        assert processing.progress == 0.5
        assert processing.id == item.id

    @pytest.mark.parametrize("start,target", [
        (WorkStatus.WAITING, WorkStatus.COMPLETED),
        (WorkStatus.WAITING, WorkStatus.WAITING),
        (WorkStatus.PROCESSING, WorkStatus.WAITING),
    ])
    def test_illegal_transitions(self, start, target):
        item = make_item()
        if start is WorkStatus.PROCESSING:
            item = item.with_status(WorkStatus.PROCESSING)

        with pytest.raises(StateTransitionError):
            item.with_status(target)

    @pytest.mark.parametrize("terminal", [WorkStatus.COMPLETED, WorkStatus.FAILED])
    def test_terminal_states_final(self, terminal):
        item = make_item().with_status(WorkStatus.PROCESSING).with_status(terminal, error_reason="x")

        assert item.is_terminal
        for status in WorkStatus:
            with pytest.raises(StateTransitionError):
                item.with_status(status)

    def test_waiting_can_fail_directly(self):
        item = make_item().with_status(WorkStatus.FAILED, error_reason="source missing")

        assert item.error_reason == "source missing"

    def test_error_reason_only_on_failure(self):
        item = make_item().with_status(WorkStatus.PROCESSING, error_reason="ignored")

        assert item.error_reason is None

    def test_progress_bounds(self):
        with pytest.raises(ValueError):
            WorkItem(source_path="a", dest_path="b", progress=1.5)

    def test_to_dict(self):
        data = make_item("b.png").to_dict()

        assert data["status"] == "Waiting"
        assert data["file_name"] == "b.png"


class TestRunParameters:
    """Tests for parameter validation."""

    def test_defaults(self):
        params = RunParameters()

        assert params.strength == 60
        assert params.quality == 90
        assert params.dither_mode is DitherMode.NONE

    @pytest.mark.parametrize("kwargs", [{"strength": -1}, {"strength": 101}, {"quality": 0}, {"quality": 101}])
    def test_out_of_range(self, kwargs):
        with pytest.raises(ConfigError):
            RunParameters(**kwargs)

    def test_dither_string_parsed(self):
        assert RunParameters(dither_mode="floyd").dither_mode is DitherMode.FLOYD_STEINBERG

    @pytest.mark.parametrize("text,expected", [
        ("none", DitherMode.NONE),
        ("FLOYD", DitherMode.FLOYD_STEINBERG),
        ("floyd_steinberg", DitherMode.FLOYD_STEINBERG),
        ("random", DitherMode.RANDOM),
        ("", DitherMode.NONE),
        (None, DitherMode.NONE),
    ])
    def test_dither_parse(self, text, expected):
        assert DitherMode.parse(text) is expected

    def test_dither_parse_unknown(self):
        with pytest.raises(ConfigError) as exc_info:
            DitherMode.parse("ordered")

        assert exc_info.value.details["config_key"] == "dither"


class TestWorkQueue:
    """Tests for the ordered work queue."""

    def test_add_and_snapshot_order(self):
        queue = WorkQueue()
        items = [queue.add(make_item(f"{i}.jpg")) for i in range(3)]

        assert [i.id for i in queue.snapshot()] == [i.id for i in items]
        assert len(queue) == 3
        assert items[0].id in queue

    def test_duplicate_id(self):
        queue = WorkQueue()
        item = queue.add(make_item())

        with pytest.raises(ValueError):
            queue.add(item)

    def test_transition_updates_item(self):
        queue = WorkQueue()
        item = queue.add(make_item())

        updated = queue.transition(item.id, WorkStatus.PROCESSING, progress=0.25)

        assert updated.status is WorkStatus.PROCESSING
        assert queue.get(item.id) == updated

    def test_transition_keeps_position(self):
        queue = WorkQueue()
        first = queue.add(make_item("1.jpg"))
        second = queue.add(make_item("2.jpg"))

        queue.transition(first.id, WorkStatus.PROCESSING)

        assert [i.id for i in queue.snapshot()] == [first.id, second.id]

    def test_illegal_transition_leaves_item(self):
        queue = WorkQueue()
        item = queue.add(make_item())

        with pytest.raises(StateTransitionError):
            queue.transition(item.id, WorkStatus.COMPLETED)

        assert queue.get(item.id).status is WorkStatus.WAITING

    def test_transition_missing_item(self):
        assert WorkQueue().transition("nope", WorkStatus.PROCESSING) is None

    def test_remove_if_matches_status(self):
        queue = WorkQueue()
        item = queue.add(make_item())

        assert not queue.remove_if(item.id, WorkStatus.COMPLETED)
        assert queue.remove_if(item.id, WorkStatus.WAITING)
        assert item.id not in queue

    def test_clear(self):
        queue = WorkQueue()
        for i in range(4):
            queue.add(make_item(f"{i}.jpg"))

        assert queue.clear() == 4
        assert len(queue) == 0

    def test_counts(self):
        queue = WorkQueue()
        a = queue.add(make_item("a.jpg"))
        queue.add(make_item("b.jpg"))
        queue.transition(a.id, WorkStatus.PROCESSING)

        counts = queue.counts()

        assert counts["Waiting"] == 1
        assert counts["Processing"] == 1
        assert counts["Completed"] == 0


class TestProcessedHistory:
    """Tests for the bounded history."""

    def test_newest_first(self):
        history = ProcessedHistory()
        for name in ("a", "b", "c"):
            history.record(make_record(name))

        assert [r.source_path.name for r in history.snapshot()] == ["c", "b", "a"]
        assert history.latest().source_path.name == "c"

    def test_capacity_drops_oldest(self):
        history = ProcessedHistory(capacity=3)
        for i in range(5):
            history.record(make_record(str(i)))

        assert len(history) == 3
        assert [r.source_path.name for r in history.snapshot()] == ["4", "3", "2"]

    def test_default_capacity(self):
        history = ProcessedHistory()
        for i in range(120):
            history.record(make_record(str(i)))

        assert len(history) == 100

    def test_replace_keeps_newest(self):
        history = ProcessedHistory(capacity=2)
        history.record(make_record("old"))

        history.replace([make_record("c"), make_record("b"), make_record("a")])

        assert [r.source_path.name for r in history.snapshot()] == ["c", "b"]

    def test_record_without_source(self):
        record = ProcessedRecord(source_path=None, dest_path="out/a.jpg", parameters=RunParameters())

        assert record.to_dict()["source_path"] is None
        assert record.dest_path.name == "a.jpg"

    def test_invalid_capacity(self):
        with pytest.raises(ValueError):
            ProcessedHistory(capacity=0)

    def test_clear(self):
        history = ProcessedHistory()
        history.record(make_record("a"))
        history.clear()

        assert len(history) == 0
        assert history.latest() is None

    def test_record_to_dict(self):
        data = make_record("x.jpg").to_dict()

        assert data["strength"] == 60
        assert data["dither"] == "none"
