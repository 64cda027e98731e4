"""
Natural-language workout parsing.

    >>> parse_workout("Ran 5 miles in 40 minutes")
    ParsedWorkout(exercise_type='running', duration_minutes=40, distance_km=8.0467)

Exercise type is required; distance (normalised to km) and duration
(normalised to minutes) are optional.
"""
import re
from dataclasses import dataclass
from typing import List, Optional, Tuple

from coach_cli.errors import ParseError

MILES_TO_KM = 1.60934

# First match wins, so order matters.
EXERCISE_PATTERNS: List[Tuple[str, re.Pattern]] = [
    ("running", re.compile(r"\b(ran|running|run|jog|jogging)\b", re.IGNORECASE)),
    ("cycling", re.compile(r"\b(cycl(e|ed|ing)|bik(e|ed|ing)|rode)\b", re.IGNORECASE)),
    ("swimming", re.compile(r"\b(swim|swimming|swam)\b", re.IGNORECASE)),
    ("walking", re.compile(r"\b(walk|walking|walked|hike|hiking|hiked)\b", re.IGNORECASE)),
    ("strength", re.compile(r"\b(lift|lifting|lifted|strength|weights?|gym)\b", re.IGNORECASE)),
]

DISTANCE_PATTERNS: List[Tuple[re.Pattern, float]] = [
    (re.compile(r"(\d+\.?\d*)\s*(km|kilometers?|kilometres?)\b"), 1.0),
    (re.compile(r"(\d+\.?\d*)\s*(mi|miles?)\b"), MILES_TO_KM),
    (re.compile(r"(\d+\.?\d*)\s*(m|meters?|metres?)\b"), 0.001),
]

DURATION_PATTERNS: List[Tuple[re.Pattern, float]] = [
    (re.compile(r"(\d+\.?\d*)\s*(min|mins|minutes?)\b"), 1.0),
    (re.compile(r"(\d+\.?\d*)\s*(h|hr|hrs|hours?)\b"), 60.0),
]


@dataclass
class ParsedWorkout:
    exercise_type: str
    duration_minutes: Optional[int] = None
    distance_km: Optional[float] = None


def detect_exercise_type(description: str) -> str:
    for exercise_type, pattern in EXERCISE_PATTERNS:
        if pattern.search(description):
            return exercise_type
    raise ParseError(
        "Could not detect exercise type from description",
        hint="Mention the activity, e.g. 'ran', 'cycled', 'swam', 'walked' or 'lifted'",
    )


def extract_distance(description: str) -> Optional[float]:
    for pattern, to_km in DISTANCE_PATTERNS:
        match = pattern.search(description)
        if match:
            return round(float(match.group(1)) * to_km, 4)
    return None


def extract_duration(description: str) -> Optional[int]:
    for pattern, to_minutes in DURATION_PATTERNS:
        match = pattern.search(description)
        if match:
            return int(float(match.group(1)) * to_minutes)
    return None


def parse_workout(description: str) -> ParsedWorkout:
    """
    Parse a free-text workout description.

    Raises:
        ParseError: no recognisable exercise type
    """
    text = description.strip().lower()
    return ParsedWorkout(
        exercise_type=detect_exercise_type(text),
        duration_minutes=extract_duration(text),
        distance_km=extract_distance(text),
    )
