"""
Condition (variant) helpers shared by the quotation and the editor views.

A block linked to a condition is a variant: its items carry the option they
belong to, and only the items matching the trip's selected option count.
"""
import logging
from collections import defaultdict
from dataclasses import dataclass, field
from typing import Iterable, Optional

logger = logging.getLogger(__name__)


@dataclass
class ConditionSelection:
    """Detached view of a trip condition (used for cotation overrides)."""
    condition_id: int
    selected_option_id: Optional[int] = None
    is_active: bool = True
    options: list = field(default_factory=list)


@dataclass
class VariantGroupReport:
    condition_id: int
    active_variant_id: Optional[int]
    unassigned_variant_ids: list[int] = field(default_factory=list)
    duplicate_option_ids: list[int] = field(default_factory=list)

    @property
    def is_consistent(self) -> bool:
        return not self.unassigned_variant_ids and not self.duplicate_option_ids


def _find_trip_condition(trip_conditions: Iterable, condition_id: int):
    for tc in trip_conditions:
        if tc.condition_id == condition_id:
            return tc
    return None


def should_include_item(item, formula, trip_conditions: Optional[Iterable] = None) -> bool:
    if not getattr(formula, "condition_id", None):
        return True
    # Items without an option are costs shared by every variant
    if not getattr(item, "condition_option_id", None):
        return True
    if trip_conditions is None:
        return True

    tc = _find_trip_condition(trip_conditions, formula.condition_id)
    if tc is None:
        return True
    if not tc.is_active:
        return True
    # Force a choice before conditioned costs count
    if not tc.selected_option_id:
        return False
    return item.condition_option_id == tc.selected_option_id


def find_active_variant(variants: list, condition_id: int, trip_conditions: Optional[Iterable] = None):
    """
    Return the variant whose items carry the selected option of the
    condition, or the first variant when nothing matches.
    """
    if not variants:
        return None
    if trip_conditions is None:
        return variants[0]

    tc = _find_trip_condition(trip_conditions, condition_id)
    if tc is None or not tc.is_active or not tc.selected_option_id:
        return variants[0]

    for variant in variants:
        if any(i.condition_option_id == tc.selected_option_id for i in (variant.items or [])):
            return variant
    return variants[0]


def variant_option_label(variant, trip_conditions: Optional[Iterable] = None,
                         condition_id: Optional[int] = None) -> Optional[str]:
    if not condition_id or trip_conditions is None:
        return None

    tc = _find_trip_condition(trip_conditions, condition_id)
    if tc is None:
        return None

    items = list(variant.items or [])
    if not items or not items[0].condition_option_id:
        return None

    for option in tc.options or []:
        if option.id == items[0].condition_option_id:
            return option.label
    return None


def check_variant_group(variants: list, condition_id: int,
                        trip_conditions: Optional[Iterable] = None) -> VariantGroupReport:
    """
    Report gaps and duplicates in a variant group.

    Variants with no option on any item are "unassigned"; an option carried
    by more than one variant is a duplicate. Neither is rejected.
    """
    by_option = defaultdict(list)
    unassigned = []
    for variant in variants:
        option_ids = {i.condition_option_id for i in (variant.items or []) if i.condition_option_id}
        if not option_ids:
            unassigned.append(variant.id)
        for option_id in option_ids:
            by_option[option_id].append(variant.id)

    duplicates = sorted(opt for opt, ids in by_option.items() if len(ids) > 1)
    active = find_active_variant(variants, condition_id, trip_conditions)

    report = VariantGroupReport(
        condition_id=condition_id,
        active_variant_id=active.id if active is not None else None,
        unassigned_variant_ids=unassigned,
        duplicate_option_ids=duplicates,
    )
    if not report.is_consistent:
        logger.info(
            f"Variant group for condition {condition_id}: "
            f"{len(unassigned)} unassigned, duplicate options {duplicates}"
        )
    return report
