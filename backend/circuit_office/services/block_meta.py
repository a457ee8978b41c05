"""
Typed metadata for blocks.

The editor stores block metadata in Formula.description_html using a
different encoding per block type:

- accommodation: the whole field is a JSON object
- transport: the whole field is a JSON object with a travel_mode key
- activity: an <!--meals:{...}--> prefix followed by the free text
- roadbook: an <!--ROADBOOK_META:{...}--> prefix followed by the free text

Parsing never raises: content that is not metadata (legacy free text)
yields None, or an empty ActivityMeals for activities.
"""
import json
import logging
import re
from typing import Optional

from pydantic import BaseModel, ValidationError

logger = logging.getLogger(__name__)

MEALS_PREFIX = re.compile(r"^<!--meals:(.*?)-->", re.DOTALL)
ROADBOOK_PREFIX = re.compile(r"^<!--ROADBOOK_META:(.*?)-->", re.DOTALL)

ROADBOOK_CATEGORIES = {"practical", "experience", "tips"}
DEFAULT_ROADBOOK_CATEGORY = "practical"


class AccommodationMeta(BaseModel):
    accommodation_id: Optional[int] = None
    selected_room_category_id: Optional[int] = None
    nights: int = 1
    breakfast_included: bool = True
    lunch_included: bool = False
    dinner_included: bool = False


class TransportMeta(BaseModel):
    travel_mode: str
    from_location_id: Optional[int] = None
    to_location_id: Optional[int] = None
    location_from_name: Optional[str] = None
    location_to_name: Optional[str] = None
    distance_km: Optional[float] = None
    duration_minutes: Optional[int] = None
    narrative_text: Optional[str] = None


class ActivityMeals(BaseModel):
    breakfast: bool = False
    lunch: bool = False
    dinner: bool = False

    @property
    def any(self) -> bool:
        return self.breakfast or self.lunch or self.dinner


class RoadbookLocation(BaseModel):
    lat: float
    lng: float
    name: Optional[str] = None
    address: Optional[str] = None
    place_id: Optional[str] = None


class RoadbookMeta(BaseModel):
    category: str = DEFAULT_ROADBOOK_CATEGORY
    location: Optional[RoadbookLocation] = None


def _load_object(raw: Optional[str]) -> Optional[dict]:
    if not raw:
        return None
    try:
        parsed = json.loads(raw)
    except (ValueError, TypeError):
        return None
    return parsed if isinstance(parsed, dict) else None


def parse_accommodation_meta(description_html: Optional[str]) -> Optional[AccommodationMeta]:
    data = _load_object(description_html)
    if data is None:
        return None
    try:
        return AccommodationMeta.model_validate(data)
    except ValidationError as e:
        logger.debug(f"Ignoring malformed accommodation metadata: {e}")
        return None


def serialize_accommodation_meta(meta: AccommodationMeta) -> str:
    return meta.model_dump_json(exclude_none=True)


def parse_transport_meta(description_html: Optional[str]) -> Optional[TransportMeta]:
    data = _load_object(description_html)
    if not data or not data.get("travel_mode"):
        return None
    try:
        return TransportMeta.model_validate(data)
    except ValidationError as e:
        logger.debug(f"Ignoring malformed transport metadata: {e}")
        return None


def serialize_transport_meta(meta: TransportMeta) -> str:
    return meta.model_dump_json(exclude_none=True)


def parse_activity_meals(description_html: Optional[str]) -> tuple[ActivityMeals, str]:
    """Split an activity description into its meals prefix and the free text."""
    if not description_html:
        return ActivityMeals(), ""

    match = MEALS_PREFIX.match(description_html)
    if match:
        data = _load_object(match.group(1))
        if data is not None:
            try:
                return ActivityMeals.model_validate(data), description_html[match.end():]
            except ValidationError:
                pass
    return ActivityMeals(), description_html


def serialize_activity_meals(meals: ActivityMeals, text: str) -> str:
    if not meals.any:
        return text
    flags = {k: v for k, v in meals.model_dump().items() if v}
    return f"<!--meals:{json.dumps(flags)}-->{text}"


def parse_roadbook_meta(description_html: Optional[str]) -> Optional[RoadbookMeta]:
    if not description_html:
        return None
    match = ROADBOOK_PREFIX.match(description_html)
    if not match:
        return None

    data = _load_object(match.group(1))
    if not data or data.get("category") not in ROADBOOK_CATEGORIES:
        return None

    location = data.get("location")
    valid_location = (
        isinstance(location, dict)
        and isinstance(location.get("lat"), (int, float))
        and isinstance(location.get("lng"), (int, float))
    )
    return RoadbookMeta(
        category=data["category"],
        location=RoadbookLocation.model_validate(location) if valid_location else None,
    )


def strip_roadbook_meta(description_html: Optional[str]) -> str:
    if not description_html:
        return ""
    return ROADBOOK_PREFIX.sub("", description_html, count=1).lstrip()


def serialize_roadbook_meta(meta: RoadbookMeta, text: str) -> str:
    return f"<!--ROADBOOK_META:{meta.model_dump_json(exclude_none=True)}-->{text}"


def parse_block_meta(block_type: str, description_html: Optional[str]):
    """Return the typed metadata for a block, or None when it has none."""
    if block_type == "accommodation":
        return parse_accommodation_meta(description_html)
    if block_type == "transport":
        return parse_transport_meta(description_html)
    if block_type == "activity":
        meals, _ = parse_activity_meals(description_html)
        return meals if meals.any else None
    if block_type == "roadbook":
        return parse_roadbook_meta(description_html)
    return None
