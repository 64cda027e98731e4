"""
Natural-language workout parsing.
"""
import pytest

from coach_cli.errors import ParseError
from coach_cli.workout_parser import parse_workout


@pytest.mark.parametrize("description,exercise_type,distance_km,duration", [
    ("Ran 5 miles in 40 minutes", "running", 8.0467, 40),
    ("ran 10km in 55 min", "running", 10.0, 55),
    ("Cycled 40 km in 1.5 hours", "cycling", 40.0, 90),
    ("Swam 1500 meters in 30 minutes", "swimming", 1.5, 30),
    ("swim 400m", "swimming", 0.4, None),
    ("Walked for 45 minutes", "walking", None, 45),
    ("Lifted weights for 1 hour", "strength", None, 60),
    ("Went on a 2 hr bike ride", "cycling", None, 120),
])
def test_parse(description, exercise_type, distance_km, duration):
    parsed = parse_workout(description)
    assert parsed.exercise_type == exercise_type
    assert parsed.duration_minutes == duration
    if distance_km is None:
        assert parsed.distance_km is None
    else:
        assert parsed.distance_km == pytest.approx(distance_km, abs=1e-3)


def test_minutes_are_not_read_as_meters():
    parsed = parse_workout("Ran 30 minutes")
    assert parsed.distance_km is None
    assert parsed.duration_minutes == 30


def test_running_wins_over_later_keywords():
    assert parse_workout("Ran to the gym").exercise_type == "running"


def test_unknown_activity():
    with pytest.raises(ParseError) as exc:
        parse_workout("Did 20 minutes of something")
    assert exc.value.hint
