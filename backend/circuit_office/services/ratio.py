from dataclasses import dataclass
from typing import Optional


@dataclass(frozen=True)
class RatioMapping:
    ratio_type: str
    ratio_per: int
    ratio_categories: str


def map_ratio_rule(
    rule: Optional[str],
    ratio_per: Optional[int] = None,
    ratio_categories: Optional[str] = None,
) -> RatioMapping:
    """Map an editor ratio rule to the (ratio_type, ratio_per, ratio_categories) triple."""
    per = ratio_per if ratio_per is not None else 1

    if rule == "per_person":
        return RatioMapping("ratio", per, ratio_categories or "adult")
    if rule == "per_room":
        return RatioMapping("ratio", per, "room")
    if rule == "per_vehicle":
        return RatioMapping("ratio", per, "vehicle")
    if rule == "per_group":
        return RatioMapping("set", 1, ratio_categories or "adult")
    return RatioMapping("set", 1, "adult")
