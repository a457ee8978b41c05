"""
Season matching and room-rate resolution for accommodation blocks.

Seasons come in three shapes:
- fixed: ISO start/end dates (YYYY-MM-DD)
- recurring: MM-DD start/end, matched every year, may wrap over new year
- weekday: a list of weekdays, 0 = Sunday ... 6 = Saturday

When several active seasons match a date the highest priority wins.
"""
from collections import defaultdict
from datetime import date, datetime, timedelta
from typing import Optional

from pydantic import BaseModel

SEASON_MATCH_SCORE = 100
DEFAULT_RATE_SCORE = 50
BED_TYPE_SCORE = 10


class AccommodationSeason(BaseModel):
    id: int
    name: str = ""
    season_type: str = "fixed"
    start_date: Optional[str] = None
    end_date: Optional[str] = None
    weekdays: list[int] = []
    priority: int = 0
    is_active: bool = True


class RoomRate(BaseModel):
    id: int
    room_category_id: int
    season_id: Optional[int] = None
    bed_type: str = "DBL"
    rate_type: str = "per_night"
    cost: float = 0.0
    currency: str = "THB"
    meal_plan: str = "BB"
    is_active: bool = True


def _parse_iso(value: str) -> Optional[date]:
    try:
        return datetime.strptime(value, "%Y-%m-%d").date()
    except (TypeError, ValueError):
        return None


def _in_fixed_season(day: date, season: AccommodationSeason) -> bool:
    start = _parse_iso(season.start_date) if season.start_date else None
    end = _parse_iso(season.end_date) if season.end_date else None
    if not start or not end:
        return False
    return start <= day <= end


def _mmdd(value: str) -> Optional[int]:
    try:
        month, day = (int(p) for p in value.split("-")[:2])
    except (AttributeError, ValueError):
        return None
    if not month or not day:
        return None
    return month * 100 + day


def _in_recurring_season(day: date, season: AccommodationSeason) -> bool:
    if not season.start_date or not season.end_date:
        return False
    start = _mmdd(season.start_date)
    end = _mmdd(season.end_date)
    if start is None or end is None:
        return False

    current = day.month * 100 + day.day
    if start <= end:
        return start <= current <= end
    # Wraps over new year, e.g. 11-01 to 02-28
    return current >= start or current <= end


def _in_weekday_season(day: date, season: AccommodationSeason) -> bool:
    if not season.weekdays:
        return False
    # Python: Monday = 0 ... Sunday = 6
    return (day.weekday() + 1) % 7 in season.weekdays


def date_matches_season(day: date, season: AccommodationSeason) -> bool:
    if season.season_type == "fixed":
        return _in_fixed_season(day, season)
    if season.season_type == "recurring":
        return _in_recurring_season(day, season)
    if season.season_type == "weekday":
        return _in_weekday_season(day, season)
    return False


def resolve_season_for_date(seasons: list[AccommodationSeason], day: date) -> Optional[int]:
    """Id of the season applying on that date, None for the default rate."""
    matching = [s for s in seasons or [] if s.is_active and date_matches_season(day, s)]
    if not matching:
        return None
    return max(matching, key=lambda s: s.priority).id


def pick_best_rate(
    rates: list[RoomRate],
    season_id: Optional[int],
    preferred_bed_type: str = "DBL",
) -> Optional[RoomRate]:
    if not rates:
        return None

    def score(rate: RoomRate) -> int:
        value = 0
        if season_id is not None and rate.season_id == season_id:
            value += SEASON_MATCH_SCORE
        elif not rate.season_id:
            value += DEFAULT_RATE_SCORE
        if rate.bed_type == preferred_bed_type:
            value += BED_TYPE_SCORE
        return value

    # max() keeps the first of equal scores, like a stable sort
    return max(rates, key=score)


def build_rate_map(
    rates: list[RoomRate],
    season_id: Optional[int],
    preferred_bed_type: str = "DBL",
) -> dict[int, RoomRate]:
    """Best active rate for each room category."""
    by_room = defaultdict(list)
    for rate in rates or []:
        if rate.is_active:
            by_room[rate.room_category_id].append(rate)

    result = {}
    for room_id, room_rates in by_room.items():
        best = pick_best_rate(room_rates, season_id, preferred_bed_type)
        if best:
            result[room_id] = best
    return result


def build_rate_map_by_bed_type(
    rates: list[RoomRate],
    season_id: Optional[int],
    room_category_id: int,
) -> dict[str, RoomRate]:
    by_bed = defaultdict(list)
    for rate in rates or []:
        if rate.is_active and rate.room_category_id == room_category_id:
            by_bed[rate.bed_type].append(rate)

    return {
        bed_type: pick_best_rate(bed_rates, season_id, bed_type)
        for bed_type, bed_rates in by_bed.items()
    }


def trip_day_date(trip_start: Optional[date], day_number: int) -> Optional[date]:
    if not trip_start:
        return None
    return trip_start + timedelta(days=day_number - 1)
