"""
End-to-end command runs through `main()` against a temporary home.

None of these log in, so nothing reaches the network.
"""
import json
from datetime import date

import pytest

from coach_cli.commands.stats import period_start, summarize
from coach_cli.main import build_parser, main
from coach_cli.models import EntityType, Goal, GoalType, Workout


def _run(capsys, *argv):
    code = main(list(argv))
    out, err = capsys.readouterr()
    return code, out, err


def _workout(**overrides) -> Workout:
    fields = {"date": date(2026, 3, 2), "exercise_type": "running", "duration_minutes": 40, "distance_km": 8.0}
    fields.update(overrides)
    return Workout(**fields)


class TestWorkoutCommands:

    def test_log_parses_description(self, capsys, store):
        code, out, _ = _run(capsys, "workout", "log", "Ran 5 miles in 40 minutes", "--date", "2026-03-02")

        assert code == 0
        assert "Workout logged" in out
        [workout] = store.list_workouts()
        assert workout.exercise_type == "running"
        assert workout.distance_km == pytest.approx(8.0467, abs=1e-3)
        assert workout.duration_minutes == 40
        assert workout.date == date(2026, 3, 2)
        assert workout.synced is False

    def test_flags_override_description(self, capsys, store):
        _run(capsys, "workout", "log", "Ran 5 miles", "--duration", "50", "--type", "trail")
        [workout] = store.list_workouts()
        assert workout.exercise_type == "trail"
        assert workout.duration_minutes == 50

    def test_log_in_miles_from_config(self, capsys, store, coach_home):
        coach_home.mkdir(parents=True, exist_ok=True)
        (coach_home / "config.json").write_text(json.dumps({"workouts": {"default_distance_unit": "mi"}}))

        _run(capsys, "workout", "log", "--type", "running", "--distance", "10")

        [workout] = store.list_workouts()
        assert workout.distance_km == pytest.approx(16.0934)

    def test_log_without_anything(self, capsys):
        code, _, err = _run(capsys, "workout", "log")
        assert code == 1
        assert "Error: Nothing to log" in err

    def test_unparseable_description(self, capsys, store):
        code, _, err = _run(capsys, "workout", "log", "Did something for 20 minutes")
        assert code == 1
        assert "Could not detect exercise type" in err
        assert store.list_workouts() == []

    def test_list(self, capsys, store):
        store.add_workout(_workout(exercise_type="cycling"))
        code, out, _ = _run(capsys, "workout", "list")
        assert code == 0
        assert "cycling" in out
        assert "pending" in out

    def test_list_empty(self, capsys):
        assert _run(capsys, "workout", "list")[1].strip() == "No workouts found."

    def test_show_by_prefix(self, capsys, store):
        workout = store.add_workout(_workout(notes="hill repeats"))
        code, out, _ = _run(capsys, "workout", "show", workout.id[:8])
        assert code == 0
        assert "hill repeats" in out

    def test_show_unknown(self, capsys):
        code, _, err = _run(capsys, "workout", "show", "nope")
        assert code == 1
        assert "Workout not found: nope" in err

    def test_edit_clears_synced(self, capsys, store):
        workout = store.add_workout(_workout())
        store.mark_synced(EntityType.WORKOUT, workout.id, workout.revision, workout.created_at)

        code, _, _ = _run(capsys, "workout", "edit", workout.id, "--notes", "felt strong")

        assert code == 0
        edited = store.get_workout(workout.id)
        assert edited.notes == "felt strong"
        assert edited.synced is False

    def test_edit_without_changes(self, capsys, store):
        workout = store.add_workout(_workout())
        assert _run(capsys, "workout", "edit", workout.id)[0] == 1

    def test_delete_force(self, capsys, store):
        workout = store.add_workout(_workout())
        code, _, _ = _run(capsys, "workout", "delete", workout.id, "--force")
        assert code == 0
        assert store.get_workout(workout.id) is None


class TestGoalCommands:

    def test_create_update_complete(self, capsys, store):
        code, _, _ = _run(capsys, "goals", "create", "Run 100 km", "--type", "distance", "--target", "100")
        assert code == 0
        [goal] = store.list_goals()

        _run(capsys, "goals", "update", goal.id, "--progress", "40")
        assert store.get_goal(goal.id).progress_percentage() == 40.0

        _run(capsys, "goals", "complete", goal.id)
        assert store.list_goals() == []
        assert store.list_goals(include_completed=True)[0].completed

    def test_invalid_goal_type(self, capsys, store):
        code, _, err = _run(capsys, "goals", "create", "Go fast", "--type", "speed")
        assert code == 1
        assert "Invalid goal type" in err
        assert store.list_goals(include_completed=True) == []

    def test_list(self, capsys, store):
        store.add_goal(Goal(title="Spring marathon", goal_type=GoalType.EVENT, target_date=date(2026, 4, 20)))
        code, out, _ = _run(capsys, "goals", "list")
        assert code == 0
        assert "marathon" in out

    def test_delete_force(self, capsys, store):
        goal = store.add_goal(Goal(title="5k", goal_type=GoalType.EVENT))
        assert _run(capsys, "goals", "delete", goal.id, "-f")[0] == 0
        assert store.get_goal(goal.id) is None


class TestStats:

    def test_period_start(self):
        wednesday = date(2026, 3, 4)
        assert period_start("week", wednesday) == date(2026, 3, 2)
        assert period_start("month", wednesday) == date(2026, 3, 1)
        assert period_start("year", wednesday) == date(2026, 1, 1)
        assert period_start("all", wednesday) is None

    def test_summarize(self):
        summary = summarize([
            _workout(),
            _workout(distance_km=12.0, duration_minutes=60),
            _workout(exercise_type="strength", distance_km=None, duration_minutes=45),
        ])
        assert summary.count == 3
        assert summary.distance_km == 20.0
        assert summary.duration_minutes == 145
        assert summary.by_type["running"].count == 2
        assert summary.by_type["strength"].distance_km == 0.0

    def test_command(self, capsys, store):
        store.add_workout(_workout(date=date.today()))
        code, out, _ = _run(capsys, "stats", "--year")
        assert code == 0
        assert "running" in out

    def test_periods_are_exclusive(self, capsys):
        with pytest.raises(SystemExit):
            main(["stats", "--week", "--month"])


class TestSyncCommand:

    def test_not_logged_in(self, capsys):
        code, _, err = _run(capsys, "sync")
        assert code == 1
        assert "Not logged in" in err
        assert "ai-coach login" in err

    def test_offline(self, capsys):
        code, _, err = _run(capsys, "--offline", "sync")
        assert code == 1
        assert "--offline" in err

    def test_resolve_keep_server(self, capsys, store):
        workout = store.add_workout(_workout(notes="local edit"))
        store.record_conflict(EntityType.WORKOUT, workout.id, {
            "id": workout.id,
            "date": "2026-03-02",
            "exercise_type": "running",
            "duration_minutes": 40,
            "distance_km": 8.0,
            "notes": "server edit",
            "deleted_at": None,
            "created_at": "2026-03-02T07:00:00Z",
            "updated_at": "2026-03-02T08:00:00Z",
        })

        code, out, _ = _run(capsys, "--offline", "sync", "--resolve", workout.id, "--keep", "server")

        assert code == 0
        assert "resolved" in out
        resolved = store.get_workout(workout.id)
        assert resolved.notes == "server edit"
        assert resolved.synced is True
        assert store.list_conflicts() == []

    def test_resolve_needs_keep(self, capsys):
        assert _run(capsys, "sync", "--resolve", "abc")[0] == 1


class TestMisc:

    def test_whoami_logged_out(self, capsys):
        code, out, _ = _run(capsys, "whoami")
        assert code == 0
        assert "not logged in" in out

    def test_offline_logout_clears_tokens(self, capsys, store):
        store.save_tokens("a", "r", email="runner@example.com")
        assert _run(capsys, "--offline", "logout")[0] == 0
        assert store.get_tokens() is None

    def test_dashboard(self, capsys, store):
        store.add_workout(_workout(date=date.today()))
        store.add_goal(Goal(title="Run 100 km", goal_type=GoalType.DISTANCE, target_value=100, current_value=25))
        code, out, _ = _run(capsys, "dashboard")
        assert code == 0
        assert "This Week" in out
        assert "Run 100 km" in out
        assert "not logged in" in out

    def test_config_init_and_show(self, capsys, coach_home):
        code, out, _ = _run(capsys, "config", "init")
        assert code == 0
        assert (coach_home / "config.json").exists()

        assert "already exists" in _run(capsys, "config", "init")[1]

        code, out, _ = _run(capsys, "config", "show")
        assert '"base_url": "http://localhost:3000"' in out

    def test_bad_config_is_one_line_error(self, capsys, coach_home):
        coach_home.mkdir(parents=True)
        (coach_home / "config.json").write_text("{oops")
        code, _, err = _run(capsys, "config", "show")
        assert code == 1
        assert err.startswith("Error: Could not parse")

    @pytest.mark.parametrize("shell,marker", [
        ("bash", "complete -F _ai_coach ai-coach"),
        ("zsh", "#compdef ai-coach"),
        ("fish", "complete -c ai-coach"),
    ])
    def test_completions(self, capsys, shell, marker):
        code, out, _ = _run(capsys, "completions", shell)
        assert code == 0
        assert marker in out
        assert "workout" in out
        assert "dashboard" in out

    def test_every_command_has_a_handler(self):
        parser = build_parser()
        for argv in (["login"], ["logout"], ["whoami"], ["workout", "list"], ["goals", "list"], ["stats"],
                     ["sync"], ["dashboard"], ["config", "show"], ["completions", "bash"]):
            assert callable(parser.parse_args(argv).func)
