"""Display and argument helpers shared by the commands."""
import argparse
from datetime import date
from typing import Optional

from coach_cli.workout_parser import MILES_TO_KM


def parse_date(value: str) -> date:
    """argparse `type=` for YYYY-MM-DD."""
    try:
        return date.fromisoformat(value)
    except ValueError:
        raise argparse.ArgumentTypeError(f"invalid date '{value}' (expected YYYY-MM-DD)")


def to_km(value: float, unit: str) -> float:
    return value * MILES_TO_KM if unit == "mi" else value


def format_distance(km: Optional[float], unit: str = "km") -> str:
    if km is None:
        return "-"
    if unit == "mi":
        return f"{km / MILES_TO_KM:.2f} mi"
    return f"{km:.2f} km"


def format_duration(minutes: Optional[float], unit: str = "minutes") -> str:
    if minutes is None:
        return "-"
    if unit == "hours":
        return f"{minutes / 60:.1f} h"
    hours, mins = divmod(int(round(minutes)), 60)
    if hours:
        return f"{hours}h {mins:02d}m"
    return f"{mins} min"


def format_pace(min_per_km: Optional[float], unit: str = "km") -> str:
    if min_per_km is None:
        return "-"
    if unit == "mi":
        min_per_km = min_per_km * MILES_TO_KM
    minutes, seconds = divmod(int(round(min_per_km * 60)), 60)
    return f"{minutes}:{seconds:02d} /{unit}"


def sync_badge(synced: bool) -> str:
    return "[green]synced[/green]" if synced else "[yellow]pending[/yellow]"


def short_id(record_id: str) -> str:
    return record_id[:8]
