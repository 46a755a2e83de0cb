"""
Part Number Builder

Derives the canonical chassis part number from the slot map:

    <prefix><one code per slot position><separator><remote on|off code>

Empty slots emit the admin placeholder, occupied slots emit their code-map
template with ``{inputs}`` / ``{numberOfBushings}`` substituted and any other
``{...}`` placeholder stripped. A multi-slot card emits one code and consumes
the following ``span - 1`` positions.
"""

import logging
import re
from typing import Any, Mapping, Optional, Set

from .catalog import CardDefinition, Chassis, CodeMap, CodeMapEntry, PartNumberConfig
from .slots import CardInstance, SlotAssignment, slot_key

logger = logging.getLogger(__name__)

DEFAULT_TEMPLATE = "X"
PLACEHOLDER_PATTERN = re.compile(r"\{[^}]+\}")


def strip_placeholders(template: str) -> str:
    """Remove every unresolved ``{...}`` placeholder"""
    return PLACEHOLDER_PATTERN.sub("", template)


def _bushing_count(value: Any) -> Optional[int]:
    """Counts are supplied either as a number or as the list of bushing channels"""
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    if isinstance(value, (list, tuple)):
        return len(value)
    return None


def render_slot_code(card: CardInstance, entry: Optional[CodeMapEntry],
                     bushing_count: Any = None) -> str:
    """
    Render the code emitted for one occupied slot.

    Args:
        card: Card placed at the slot
        entry: Code-map entry for the card (None uses the default template)
        bushing_count: Externally supplied bushing channel count for the slot

    Returns:
        Literal slot code, ``"X"`` when the template is unusable
    """
    template = entry.template if entry and entry.template else DEFAULT_TEMPLATE
    if not isinstance(template, str):
        logger.warning(f"Malformed template for card '{card.id}': {template!r}")
        return DEFAULT_TEMPLATE

    code = template.replace("{inputs}", str(card.input_count))
    count = _bushing_count(bushing_count)
    if count is not None:
        code = code.replace("{numberOfBushings}", str(count))
    return strip_placeholders(code)


def build_part_number(chassis: Chassis,
                      slot_assignments: SlotAssignment,
                      has_remote_display: bool,
                      pn_config: Optional[PartNumberConfig],
                      code_map: Optional[CodeMap],
                      bushing_counts: Optional[Mapping[str, Any]] = None,
                      previous: Optional[str] = None) -> str:
    """
    Build the part number for a configured chassis.

    Pure: inputs are never mutated and identical inputs give identical output.

    Args:
        chassis: Chassis being configured
        slot_assignments: Current slot map
        has_remote_display: Selects the remote on/off suffix code
        pn_config: Admin format; when missing the previous part number is kept
        code_map: Admin code-map entries keyed by card id
        bushing_counts: Bushing channel counts keyed by ``slot-<n>``
        previous: Previously stored part number

    Returns:
        Part number string
    """
    if pn_config is None:
        logger.debug(f"No part number config for chassis '{chassis.id}', keeping previous value")
        return previous if previous is not None else chassis.part_number

    code_map = code_map or {}
    bushing_counts = bushing_counts or {}
    codes = []
    occupied: Set[int] = set()

    for slot in range(1, pn_config.slot_count + 1):
        if slot in occupied:
            continue
        card = slot_assignments.get(slot)
        if card is None:
            codes.append(pn_config.slot_placeholder)
            continue
        if card.is_bushing_secondary:
            # Only reached when the primary is missing
            logger.warning(f"Bushing secondary at slot {slot} has no primary")
            codes.append(pn_config.slot_placeholder)
            continue

        entry = code_map.get(card.id)
        try:
            codes.append(render_slot_code(card, entry, bushing_counts.get(slot_key(slot))))
        except (TypeError, ValueError) as e:
            logger.warning(f"Failed to render slot {slot} code for '{card.id}': {e}")
            codes.append(DEFAULT_TEMPLATE)

        span = 2 if card.is_bushing_primary else (entry.slot_span if entry else 0) or card.span or 1
        occupied.update(range(slot + 1, slot + span))

    remote_code = pn_config.remote_on_code if has_remote_display else pn_config.remote_off_code
    return f"{pn_config.prefix}{''.join(codes)}{pn_config.suffix_separator}{remote_code}"


def accessory_part_number(card: CardDefinition, entry: Optional[CodeMapEntry]) -> str:
    """Accessories use their own template with placeholders stripped"""
    if entry and entry.template:
        return strip_placeholders(str(entry.template))
    return card.part_number or ""
