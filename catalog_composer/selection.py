"""
Product selection state for a batch run.

A selection is an ordered set of product ids plus the accessory photos the
operator uploaded for some of them. Updates return a new selection so a batch
that is already running keeps the state it started with.
"""

from dataclasses import dataclass, field
from typing import Dict, List, Optional, Tuple

from loguru import logger

from .catalog import ProductSpec
from .errors import SelectionError


@dataclass(frozen=True)
class ServiceSelections:
    """Selected product ids (in selection order) and uploaded accessory photos"""
    selected: Tuple[str, ...] = ()
    accessories: Dict[str, bytes] = field(default_factory=dict)

    def is_selected(self, product_id: str) -> bool:
        return product_id in self.selected

    def accessory_for(self, product_id: str) -> Optional[bytes]:
        return self.accessories.get(product_id)


def create_selection(product_ids: List[str] = None) -> ServiceSelections:
    """Selection with the given ids selected, duplicates dropped"""
    selected = tuple(dict.fromkeys(product_ids or []))
    return ServiceSelections(selected=selected)


def toggle_service(state: ServiceSelections, product_id: str) -> ServiceSelections:
    """Select or deselect a product; deselecting also drops its accessory photo"""
    accessories = dict(state.accessories)

    if product_id in state.selected:
        selected = tuple(pid for pid in state.selected if pid != product_id)
        accessories.pop(product_id, None)
    else:
        selected = state.selected + (product_id,)

    return ServiceSelections(selected=selected, accessories=accessories)


def set_accessory(state: ServiceSelections, product_id: str, accessory: Optional[bytes]) -> ServiceSelections:
    """Attach an accessory photo to a product; None removes it"""
    accessories = dict(state.accessories)

    if accessory is None:
        accessories.pop(product_id, None)
    else:
        accessories[product_id] = accessory

    return ServiceSelections(selected=state.selected, accessories=accessories)


def validate_selections(state: ServiceSelections,
                        catalog: Dict[str, ProductSpec]) -> Tuple[bool, Optional[str]]:
    """
    Check a selection can be processed.

    Returns (valid, reason). At least one product must be selected, and every
    selected product that builds its panel from a part photo needs either an
    upload or a catalog default. Unknown ids are ignored here; the batch
    reports them per item.
    """
    if not state.selected:
        return False, "Select at least one product"

    for product_id in state.selected:
        product = catalog.get(product_id)
        if product is None:
            continue

        if product.needs_part_image:
            has_accessory = product_id in state.accessories
            has_default = bool(product.default_part_image)
            if not has_accessory and not has_default:
                title = product.title_cn or product.title
                return False, f'"{title}" needs an accessory photo'

    return True, None


def require_valid(state: ServiceSelections, catalog: Dict[str, ProductSpec]) -> None:
    """Raise SelectionError when validate_selections fails"""
    valid, reason = validate_selections(state, catalog)
    if not valid:
        logger.warning(f"Invalid selection: {reason}")
        raise SelectionError(
            reason,
            details={'selected': list(state.selected)},
            suggestions=["Upload the missing accessory photos or choose other products"]
        )
