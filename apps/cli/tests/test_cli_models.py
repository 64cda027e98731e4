"""
Workout and goal models: derived values and the sync payloads.
"""
from datetime import date, datetime, timezone

import pytest

from coach_cli.models import Goal, GoalType, Workout


class TestGoal:

    def test_progress_is_capped(self):
        goal = Goal(title="Run 100 km", goal_type=GoalType.DISTANCE, target_value=100, current_value=150)
        assert goal.progress_percentage() == 100.0

    def test_progress_without_target(self):
        assert Goal(title="Marathon", goal_type=GoalType.EVENT, current_value=3).progress_percentage() == 0.0

    def test_days_remaining(self):
        goal = Goal(title="Race", goal_type=GoalType.EVENT, target_date=date(2026, 4, 1))
        assert goal.days_remaining(today=date(2026, 3, 1)) == 31
        assert Goal(title="Someday", goal_type=GoalType.EVENT).days_remaining() is None

    def test_mark_complete(self):
        goal = Goal(title="5k", goal_type=GoalType.EVENT, synced=True)
        goal.mark_complete()
        assert goal.completed
        assert goal.completed_at is not None
        assert goal.synced is False

    @pytest.mark.parametrize("raw,expected", [("distance", GoalType.DISTANCE), (" Frequency ", GoalType.FREQUENCY)])
    def test_parse_goal_type(self, raw, expected):
        assert GoalType.parse(raw) is expected

    def test_parse_goal_type_rejects_unknown(self):
        with pytest.raises(ValueError, match="Invalid goal type"):
            GoalType.parse("speed")


class TestWorkout:

    def test_pace(self):
        workout = Workout(date=date(2026, 3, 1), exercise_type="running", duration_minutes=40, distance_km=8.0)
        assert workout.pace_min_per_km() == 5.0
        assert Workout(date=date(2026, 3, 1), exercise_type="strength", duration_minutes=40).pace_min_per_km() is None

    def test_payload_carries_base_version(self):
        workout = Workout(
            date=date(2026, 3, 1),
            exercise_type="running",
            remote_updated_at=datetime(2026, 3, 1, 12, 0, tzinfo=timezone.utc),
        )
        payload = workout.to_payload()
        assert payload["date"] == "2026-03-01"
        assert payload["base_updated_at"] == "2026-03-01T12:00:00+00:00"
        assert "synced" not in payload
        assert "revision" not in payload

    def test_new_record_has_no_base(self):
        assert Workout(date=date(2026, 3, 1), exercise_type="running").to_payload()["base_updated_at"] is None

    def test_from_remote_is_clean(self):
        workout = Workout.from_remote({
            "id": "w1",
            "date": "2026-03-01",
            "exercise_type": "running",
            "duration_minutes": None,
            "distance_km": 5.0,
            "notes": None,
            "deleted_at": None,
            "created_at": "2026-03-01T11:00:00Z",
            "updated_at": "2026-03-01T12:00:00Z",
        })
        assert workout.synced is True
        assert workout.remote_updated_at == datetime(2026, 3, 1, 12, 0, tzinfo=timezone.utc)

    def test_update_only_changes_given_fields(self):
        workout = Workout(date=date(2026, 3, 1), exercise_type="running", duration_minutes=40, synced=True)
        workout.update(notes="hilly")
        assert workout.duration_minutes == 40
        assert workout.notes == "hilly"
        assert workout.synced is False
