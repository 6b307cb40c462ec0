from datetime import date, timedelta

from models.habit_completion import HabitCompletion
from services.completion_service import CompletionStore, CompletionSummary


DAY = date(2025, 5, 1)


def test_zero_required_is_never_complete():
    assert CompletionSummary.from_counts(0, 0).is_complete is False
    assert CompletionSummary.from_counts(0, 3).is_complete is False


def test_completed_never_exceeds_total():
    summary = CompletionSummary.from_counts(2, 5)
    assert summary.completed_required == 2
    assert summary.is_complete


def test_partial_is_not_complete():
    summary = CompletionSummary.from_counts(2, 1)
    assert summary.to_dict() == {"total_required": 2, "completed_required": 1, "is_complete": False}


def test_upsert_creates_then_updates_one_row(db, make_habit):
    habit = make_habit("Move")

    CompletionStore.upsert(db, habit.id, DAY, CompletionSummary.from_counts(2, 1))
    CompletionStore.upsert(db, habit.id, DAY, CompletionSummary.from_counts(2, 2))
    db.commit()

    rows = db.query(HabitCompletion).all()
    assert len(rows) == 1
    assert (rows[0].total_required, rows[0].completed_required, rows[0].is_complete) == (2, 2, True)


def test_upsert_is_idempotent(db, make_habit):
    habit = make_habit("Move")
    summary = CompletionSummary.from_counts(1, 1)

    first = CompletionStore.upsert(db, habit.id, DAY, summary)
    db.commit()
    second = CompletionStore.upsert(db, habit.id, DAY, summary)

    assert second.id == first.id
    assert not db.dirty
    db.commit()
    assert db.query(HabitCompletion).count() == 1


def test_upsert_keeps_days_and_habits_apart(db, make_habit):
    a = make_habit("Move")
    b = make_habit("Read")

    CompletionStore.upsert(db, a.id, DAY, CompletionSummary.from_counts(1, 1))
    CompletionStore.upsert(db, a.id, DAY + timedelta(days=1), CompletionSummary.from_counts(1, 0))
    CompletionStore.upsert(db, b.id, DAY, CompletionSummary.from_counts(0, 0))
    db.commit()

    assert db.query(HabitCompletion).count() == 3
    assert CompletionStore.get(db, a.id, DAY).is_complete
    assert not CompletionStore.get(db, a.id, DAY + timedelta(days=1)).is_complete
    assert [r.date for r in CompletionStore.get_range(db, DAY, DAY + timedelta(days=1), habit_id=a.id)] == [
        DAY, DAY + timedelta(days=1)
    ]


def test_streak_counts_back_from_today_with_grace(db, make_habit):
    habit = make_habit("Move")
    for offset, complete in [(1, True), (2, True), (3, False), (4, True)]:
        CompletionStore.upsert(db, habit.id, DAY - timedelta(days=offset),
                               CompletionSummary.from_counts(1, 1 if complete else 0))
    db.commit()

    # today not done yet: streak still counts yesterday and the day before
    assert CompletionStore.calculate_streak(db, habit.id, DAY) == 2

    CompletionStore.upsert(db, habit.id, DAY, CompletionSummary.from_counts(1, 1))
    db.commit()
    assert CompletionStore.calculate_streak(db, habit.id, DAY) == 3


def test_streak_zero_without_completions(db, make_habit):
    habit = make_habit("Empty")
    assert CompletionStore.calculate_streak(db, habit.id, DAY) == 0
