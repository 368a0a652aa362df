import random
from dataclasses import asdict

import pytest

from begtask.core.reordering import (
    BoardViewController,
    ColumnLane,
    InvalidDrag,
    ReorderFailed,
    TaskCard,
    move_item,
    renumber,
)
from begtask.schemas.reorder import DragLocation, DragResult

BOARD_ID = 1


class InMemoryBoard:
    """Board data access backed by dicts. `fail_at` makes the n-th write (0-based) raise."""

    def __init__(self, layout, responsible=None):
        self.columns = {}
        self.tasks = {}
        self.writes = []
        self.fail_at = None
        responsible = responsible or {}
        task_id = 100
        for position, (title, task_titles) in enumerate(layout.items()):
            column_id = position + 1
            self.columns[column_id] = {"title": title, "position": position}
            for index, task_title in enumerate(task_titles):
                task_id += 1
                self.tasks[task_id] = {
                    "column_id": column_id,
                    "title": task_title,
                    "position": index,
                    "responsible_id": responsible.get(task_title),
                }

    async def fetch_columns(self, board_id):
        lanes = []
        for column_id, column in sorted(self.columns.items(), key=lambda c: c[1]["position"]):
            tasks = sorted(
                (
                    TaskCard(
                        id=task_id,
                        column_id=task["column_id"],
                        title=task["title"],
                        position=task["position"],
                        responsible_id=task["responsible_id"],
                    )
                    for task_id, task in self.tasks.items()
                    if task["column_id"] == column_id
                ),
                key=lambda t: t.position,
            )
            lanes.append(
                ColumnLane(
                    id=column_id,
                    board_id=board_id,
                    title=column["title"],
                    position=column["position"],
                    tasks=tasks,
                )
            )
        return lanes

    async def update_column(self, column_id, **values):
        self._record(("column", column_id, values))
        self.columns[column_id].update(values)

    async def update_task(self, task_id, **values):
        self._record(("task", task_id, values))
        self.tasks[task_id].update(values)

    def _record(self, write):
        if self.fail_at is not None and len(self.writes) == self.fail_at:
            raise RuntimeError("connection reset")
        self.writes.append(write)

    def task_id(self, title):
        return next(i for i, t in self.tasks.items() if t["title"] == title)


class RecordingNotifier:
    def __init__(self, fail=False):
        self.calls = []
        self.fail = fail

    async def task_moved(self, responsible_id, task_title, from_column, to_column):
        self.calls.append((responsible_id, task_title, from_column, to_column))
        if self.fail:
            raise RuntimeError("provider down")


def drag(kind, source, destination=None):
    return DragResult(
        type=kind,
        source=DragLocation(container_id=source[0], index=source[1]),
        destination=DragLocation(container_id=destination[0], index=destination[1]) if destination else None,
    )


def titles(lane):
    return [t.title for t in lane.tasks]


def assert_dense(columns):
    assert [c.position for c in columns] == list(range(len(columns)))
    for column in columns:
        assert [t.position for t in column.tasks] == list(range(len(column.tasks)))
        assert all(t.column_id == column.id for t in column.tasks)


async def controller_for(store, notifier=None):
    controller = BoardViewController(BOARD_ID, store, notifier)
    await controller.load()
    return controller


async def assert_matches_store(controller, store):
    fresh = await store.fetch_columns(BOARD_ID)
    assert controller.snapshot() == [asdict(c) for c in fresh]


# --- Pure helpers --- #

def test_move_item_round_trip():
    items = ["A", "B", "C"]
    moved = move_item(items, 0, 2)
    assert moved == ["B", "C", "A"]
    assert move_item(moved, 2, 0) == items
    assert items == ["A", "B", "C"]


def test_move_item_clamps_destination_to_append():
    assert move_item(["A", "B", "C"], 0, 3) == ["B", "C", "A"]
    assert move_item(["A", "B", "C"], 1, 99) == ["A", "C", "B"]


def test_move_item_rejects_bad_source():
    with pytest.raises(InvalidDrag):
        move_item(["A"], 1, 0)


def test_renumber_returns_dense_copies():
    cards = [TaskCard(id=i, column_id=1, title=str(i), position=p) for i, p in [(1, 4), (2, 9), (3, 0)]]
    renumbered = renumber(cards)
    assert [c.position for c in renumbered] == [0, 1, 2]
    assert [c.position for c in cards] == [4, 9, 0]


# --- Column reordering --- #

async def test_column_reorder_keeps_positions_dense():
    store = InMemoryBoard({"Backlog": [], "In progress": [], "Done": []})
    controller = await controller_for(store)

    assert await controller.handle_drag_end(drag("column", (BOARD_ID, 0), (BOARD_ID, 2)))

    assert [c.title for c in controller.columns] == ["In progress", "Done", "Backlog"]
    assert_dense(controller.columns)
    await assert_matches_store(controller, store)


async def test_column_reorder_writes_only_changed_positions():
    store = InMemoryBoard({"Backlog": [], "In progress": [], "Done": []})
    controller = await controller_for(store)

    await controller.handle_drag_end(drag("column", (BOARD_ID, 2), (BOARD_ID, 1)))

    assert [c.title for c in controller.columns] == ["Backlog", "Done", "In progress"]
    assert store.writes == [
        ("column", 3, {"position": 1}),
        ("column", 2, {"position": 2}),
    ]


async def test_column_drag_from_other_container_is_invalid():
    store = InMemoryBoard({"Backlog": [], "Done": []})
    controller = await controller_for(store)

    with pytest.raises(InvalidDrag):
        await controller.handle_drag_end(drag("column", (99, 0), (BOARD_ID, 1)))
    assert store.writes == []
    assert [c.title for c in controller.columns] == ["Backlog", "Done"]


# --- Tasks within a column --- #

async def test_task_reorder_round_trip():
    store = InMemoryBoard({"To do": ["A", "B", "C"]})
    controller = await controller_for(store)

    await controller.handle_drag_end(drag("task", (1, 0), (1, 2)))
    assert titles(controller.columns[0]) == ["B", "C", "A"]
    assert_dense(controller.columns)

    await controller.handle_drag_end(drag("task", (1, 2), (1, 0)))
    assert titles(controller.columns[0]) == ["A", "B", "C"]
    assert_dense(controller.columns)
    await assert_matches_store(controller, store)


async def test_no_op_drops_issue_no_writes():
    store = InMemoryBoard({"To do": ["A", "B"], "Done": []})
    controller = await controller_for(store)
    before = controller.snapshot()

    assert await controller.handle_drag_end(drag("task", (1, 0))) is False
    assert await controller.handle_drag_end(drag("task", (1, 1), (1, 1))) is False
    assert await controller.handle_drag_end(drag("column", (BOARD_ID, 0), (BOARD_ID, 0))) is False

    assert store.writes == []
    assert controller.snapshot() == before


async def test_unknown_column_is_invalid():
    store = InMemoryBoard({"To do": ["A"]})
    controller = await controller_for(store)

    with pytest.raises(InvalidDrag):
        await controller.handle_drag_end(drag("task", (1, 0), (42, 0)))
    with pytest.raises(InvalidDrag):
        await controller.handle_drag_end(drag("task", (1, 5), (1, 0)))
    assert store.writes == []


# --- Moving between columns --- #

async def test_cross_column_move_writes_moved_task_first():
    store = InMemoryBoard({"To do": ["A", "B", "C"], "Doing": ["D", "E"]})
    controller = await controller_for(store)
    b, c, d, e = (store.task_id(t) for t in "BCDE")

    await controller.handle_drag_end(drag("task", (1, 1), (2, 0)))

    assert titles(controller.columns[0]) == ["A", "C"]
    assert titles(controller.columns[1]) == ["B", "D", "E"]
    assert_dense(controller.columns)
    assert store.writes == [
        ("task", b, {"column_id": 2, "position": 0}),
        ("task", c, {"position": 1}),
        ("task", d, {"position": 1}),
        ("task", e, {"position": 2}),
    ]
    await assert_matches_store(controller, store)


async def test_drop_at_destination_length_appends():
    store = InMemoryBoard({"To do": ["A", "B"], "Doing": ["D", "E"]})
    controller = await controller_for(store)

    await controller.handle_drag_end(drag("task", (1, 0), (2, 2)))

    assert titles(controller.columns[0]) == ["B"]
    assert titles(controller.columns[1]) == ["D", "E", "A"]
    assert_dense(controller.columns)
    # D and E keep their positions, only the moved task and B are written
    assert len(store.writes) == 2


async def test_move_into_empty_column():
    store = InMemoryBoard({"To do": ["A"], "Done": []})
    controller = await controller_for(store)

    await controller.handle_drag_end(drag("task", (1, 0), (2, 0)))

    assert titles(controller.columns[0]) == []
    assert titles(controller.columns[1]) == ["A"]
    assert store.writes == [("task", store.task_id("A"), {"column_id": 2, "position": 0})]


# --- Failure recovery --- #

async def test_partial_failure_reloads_from_source_of_truth():
    store = InMemoryBoard({"To do": ["A", "B", "C"], "Doing": ["D", "E"]})
    controller = await controller_for(store)
    store.fail_at = 1

    with pytest.raises(ReorderFailed) as exc:
        await controller.handle_drag_end(drag("task", (1, 0), (2, 0)))

    assert isinstance(exc.value.cause, RuntimeError)
    # The first write went through, the rest never happened
    assert len(store.writes) == 1
    assert store.tasks[store.task_id("A")]["column_id"] == 2
    await assert_matches_store(controller, store)


async def test_failed_column_reorder_reloads():
    store = InMemoryBoard({"Backlog": [], "In progress": [], "Done": []})
    controller = await controller_for(store)
    store.fail_at = 0

    with pytest.raises(ReorderFailed):
        await controller.handle_drag_end(drag("column", (BOARD_ID, 0), (BOARD_ID, 2)))

    assert [c.title for c in controller.columns] == ["Backlog", "In progress", "Done"]
    await assert_matches_store(controller, store)


async def test_column_reorder_failing_midway_shows_applied_writes():
    store = InMemoryBoard({"A": [], "B": [], "C": []})
    controller = await controller_for(store)
    store.fail_at = 1

    with pytest.raises(ReorderFailed):
        await controller.handle_drag_end(drag("column", (BOARD_ID, 0), (BOARD_ID, 2)))

    # only B reached position 0 before the failure
    assert store.writes == [("column", 2, {"position": 0})]
    assert [(c.title, c.position) for c in controller.columns] == [("A", 0), ("B", 0), ("C", 2)]
    await assert_matches_store(controller, store)


# --- Gesture sequences --- #

def random_gesture(rng, columns):
    if rng.random() < 0.25:
        return drag(
            "column",
            (BOARD_ID, rng.randrange(len(columns))),
            (BOARD_ID, rng.randrange(len(columns))),
        )
    source = rng.choice([c for c in columns if c.tasks])
    if rng.random() < 0.5:
        target = source
        index = rng.randrange(len(source.tasks))
    else:
        target = rng.choice(columns)
        index = rng.randrange(len(target.tasks) + 1)
    return drag("task", (source.id, rng.randrange(len(source.tasks))), (target.id, index))


@pytest.mark.parametrize("seed", range(8))
async def test_random_gesture_sequences_stay_dense(seed):
    rng = random.Random(seed)
    store = InMemoryBoard(
        {"To do": ["A", "B", "C", "D"], "Doing": ["E", "F"], "Review": [], "Done": ["G", "H", "I"]}
    )
    controller = await controller_for(store)
    all_titles = sorted(store.tasks[i]["title"] for i in store.tasks)

    for _ in range(40):
        await controller.handle_drag_end(random_gesture(rng, controller.columns))
        assert_dense(controller.columns)
        await assert_matches_store(controller, store)
        assert sorted(t.title for c in controller.columns for t in c.tasks) == all_titles


# --- Move notifications --- #

async def test_move_without_responsible_sends_nothing():
    store = InMemoryBoard({"To do": ["A"], "Done": []})
    notifier = RecordingNotifier()
    controller = await controller_for(store, notifier)

    await controller.handle_drag_end(drag("task", (1, 0), (2, 0)))

    assert notifier.calls == []


async def test_move_with_responsible_notifies_once():
    store = InMemoryBoard({"To do": ["A", "B"], "Done": ["C"]}, responsible={"B": 7})
    notifier = RecordingNotifier()
    controller = await controller_for(store, notifier)

    await controller.handle_drag_end(drag("task", (1, 1), (2, 1)))

    assert notifier.calls == [(7, "B", "To do", "Done")]


async def test_reorder_within_column_does_not_notify():
    store = InMemoryBoard({"To do": ["A", "B"]}, responsible={"A": 7})
    notifier = RecordingNotifier()
    controller = await controller_for(store, notifier)

    await controller.handle_drag_end(drag("task", (1, 0), (1, 1)))

    assert notifier.calls == []


async def test_notifier_errors_do_not_fail_the_move():
    store = InMemoryBoard({"To do": ["A"], "Done": []}, responsible={"A": 7})
    notifier = RecordingNotifier(fail=True)
    controller = await controller_for(store, notifier)

    assert await controller.handle_drag_end(drag("task", (1, 0), (2, 0)))
    assert len(notifier.calls) == 1
    await assert_matches_store(controller, store)


async def test_failed_move_does_not_notify():
    store = InMemoryBoard({"To do": ["A"], "Done": []}, responsible={"A": 7})
    notifier = RecordingNotifier()
    controller = await controller_for(store, notifier)
    store.fail_at = 0

    with pytest.raises(ReorderFailed):
        await controller.handle_drag_end(drag("task", (1, 0), (2, 0)))
    assert notifier.calls == []
