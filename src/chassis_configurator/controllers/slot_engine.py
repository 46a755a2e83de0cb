"""
Slot Assignment Engine

Decides whether a card may be placed at a slot and applies placements,
clears and auto-inclusion to the session's slot map.

Validation rules, first failure wins:
    1. chassis compatibility             -> incompatible-chassis
    2. outside-chassis accessories       -> wrong-slot
    3. admin exclusive slots             -> exclusivity-violated
    4. designated-only positions         -> wrong-slot
    5. controller module (position 0)    -> wrong-slot
    6. chassis fallback reservations     -> wrong-slot
    7. span fits inside free slots       -> span-unavailable
    8. one bushing per chassis           -> bushing-conflict

Rejections never change state and never raise.
"""

import logging
from dataclasses import dataclass, field
from typing import List, Optional, Tuple

from ..models.catalog import CardDefinition, CodeMapEntry
from ..models.enums import PlacementError
from ..models.session import ConfigurationSession
from ..models.slots import CardInstance, slot_key

logger = logging.getLogger(__name__)

BUSHING_SPAN = 2

Removed = List[Tuple[int, CardInstance]]


@dataclass
class PlacementResult:
    """Outcome of validating or applying a placement"""
    error: PlacementError = PlacementError.OK
    slot: Optional[int] = None
    message: str = ""
    occupied_slots: List[int] = field(default_factory=list)
    removed: Removed = field(default_factory=list)

    @property
    def is_valid(self) -> bool:
        return self.error == PlacementError.OK

    def __bool__(self) -> bool:
        return self.is_valid


def _reject(error: PlacementError, slot: int, message: str) -> PlacementResult:
    return PlacementResult(error=error, slot=slot, message=message)


class SlotAssignmentEngine:
    """
    Placement rules and slot map mutation for one configuration session.

    Usage:
        engine = SlotAssignmentEngine(session)
        result = engine.assign(card, 3)
        if not result:
            notify(result.message)
    """

    def __init__(self, session: ConfigurationSession):
        self.session = session

    @property
    def catalog(self):
        return self.session.catalog

    @property
    def chassis(self):
        return self.session.catalog.chassis

    @property
    def assignments(self):
        return self.session.slot_assignments

    # ========== Geometry ==========

    def card_span(self, card: CardDefinition, entry: Optional[CodeMapEntry] = None) -> int:
        """Slots consumed by a card: bushings always 2, else admin span or card span"""
        if card.is_bushing:
            return BUSHING_SPAN
        if entry is not None and entry.slot_span:
            return entry.slot_span
        return max(1, card.slot_span)

    def resolve_bushing_pair(self, slot: int) -> Tuple[int, int]:
        """
        Normalize a clicked slot to the canonical (primary, secondary) pair.

        The last slot of a layout row and the last slot of the chassis pair
        with the slot before them.
        """
        row = self.chassis.row_of(slot)
        is_row_end = row is not None and len(row) > 1 and slot == row[-1]
        primary = slot
        if slot >= self.chassis.total_slots or is_row_end:
            primary = slot - 1
        if primary < 1:
            primary = slot
        return primary, primary + 1

    def _target_slots(self, card: CardDefinition, slot: int,
                      entry: Optional[CodeMapEntry]) -> List[int]:
        if card.is_bushing:
            return list(self.resolve_bushing_pair(slot))
        return list(range(slot, slot + self.card_span(card, entry)))

    def _owners(self, slots: List[int]) -> List[int]:
        owners = []
        for s in slots:
            owner = self.assignments.owner_of(s)
            if owner is not None and owner not in owners:
                owners.append(owner)
        return owners

    # ========== Validation ==========

    def validate(self, card: CardDefinition, slot: int, replace: bool = False) -> PlacementResult:
        """
        Check a candidate placement without changing state.

        Args:
            card: Card to place
            slot: Target (clicked) slot
            replace: Treat current occupants of the target slots as removable.
                Bushing placements always replace.

        Returns:
            PlacementResult; ``slot`` is the normalized head slot
        """
        chassis = self.chassis
        entry = self.catalog.entry_for(card.id)

        # 1. Chassis compatibility
        if not card.is_compatible_with(chassis.type_code):
            return _reject(PlacementError.INCOMPATIBLE_CHASSIS, slot,
                           f"{card.name} is not compatible with {chassis.type_code or chassis.id} chassis")

        # 2. Accessories never sit in a slot
        if entry is not None and entry.outside_chassis:
            return _reject(PlacementError.WRONG_SLOT, slot,
                           f"{card.name} is an outside-chassis accessory")

        target = self._target_slots(card, slot, entry)
        head = target[0]

        # 3. Admin exclusive slots
        for s in target:
            owners = self.catalog.exclusive_cards_for_slot(s)
            if owners and card.id not in owners:
                return _reject(PlacementError.EXCLUSIVITY_VIOLATED, head,
                               f"Slot {s} is reserved for {', '.join(sorted(owners))}")

        # 4. Designated positions
        if entry is not None and entry.designated_only and head not in entry.designated_positions:
            positions = ", ".join(str(p) for p in entry.designated_positions) or "none"
            return _reject(PlacementError.WRONG_SLOT, head,
                           f"{card.name} may only be placed in slot(s) {positions}")

        # 5. Controller module
        if entry is not None and entry.is_controller:
            return _reject(PlacementError.WRONG_SLOT, head,
                           f"{card.name} is the fixed controller module")

        # 6. Chassis fallback reservations
        for s in target:
            reserved = chassis.fixed_category_for(s)
            if reserved is None or self.catalog.exclusive_cards_for_slot(s):
                continue
            if card.category != reserved:
                return _reject(PlacementError.WRONG_SLOT, head,
                               f"Slot {s} is reserved for {reserved.value} cards")

        # 7. Span fit
        if target[0] < 1 or target[-1] > chassis.total_slots:
            return _reject(PlacementError.SPAN_UNAVAILABLE, head,
                           f"{card.name} needs slots {target[0]}-{target[-1]}, "
                           f"chassis has slots 1-{chassis.total_slots}")
        if not (replace or card.is_bushing):
            taken = self.assignments.occupied_slots().intersection(target)
            if taken:
                return _reject(PlacementError.SPAN_UNAVAILABLE, head,
                               f"Slot(s) {', '.join(str(s) for s in sorted(taken))} already occupied")

        # 8. One bushing per chassis
        if card.is_bushing:
            pair = (target[0], target[1])
            for existing in self._existing_bushings():
                if existing != pair:
                    return _reject(PlacementError.BUSHING_CONFLICT, head,
                                   f"A bushing card already occupies slots {existing[0]}-{existing[1]}; "
                                   f"clear it first")

        return PlacementResult(slot=head, occupied_slots=target)

    def _existing_bushings(self) -> List[Tuple[int, int]]:
        pairs = list(self.assignments.bushing_pairs())
        # Orphan secondaries still block a second bushing
        for slot, card in self.assignments.items():
            if card.is_bushing_secondary and card.bushing_pair_slot not in self.assignments:
                pairs.append((card.bushing_pair_slot, slot))
        return pairs

    # ========== Mutation ==========

    def assign(self, card: CardDefinition, slot: int, replace: bool = False) -> PlacementResult:
        """
        Validate and apply a placement.

        Occupants of the target slots are cleared first when replacing (always
        for bushings); they are returned in ``result.removed`` so their linked
        configuration records can be released.
        """
        result = self.validate(card, slot, replace=replace)
        if not result:
            logger.info(f"Rejected {card.id} at slot {slot}: {result.error.value} ({result.message})")
            return result

        removed: Removed = []
        for owner in self._owners(result.occupied_slots):
            removed.extend(self.clear(owner))

        head = result.slot
        if card.is_bushing:
            secondary = result.occupied_slots[1]
            self.assignments[head] = CardInstance.from_card(
                card, span=BUSHING_SPAN, is_bushing_primary=True, bushing_pair_slot=secondary)
            self.assignments[secondary] = CardInstance.from_card(
                card, span=1, is_bushing_secondary=True, bushing_pair_slot=head)
            logger.info(f"Placed bushing {card.id} at slots {head}-{secondary}")
        else:
            span = len(result.occupied_slots)
            self.assignments[head] = CardInstance.from_card(card, span=span)
            logger.info(f"Placed {card.id} at slot {head} (span {span})")

        result.removed = removed
        return result

    def clear(self, slot: int) -> Removed:
        """
        Remove the card covering ``slot``.

        A bushing is removed from both of its slots. Clearing an empty slot
        is a no-op.

        Returns:
            Removed (slot, instance) pairs
        """
        owner = self.assignments.owner_of(slot)
        if owner is None:
            return []

        card = self.assignments.pop(owner)
        removed: Removed = [(owner, card)]

        if card.is_bushing_primary or card.is_bushing_secondary:
            pair_slot = card.bushing_pair_slot
            partner = self.assignments.get(pair_slot) if pair_slot is not None else None
            if partner is not None and partner.bushing_pair_slot == owner:
                self.assignments.pop(pair_slot)
                removed.append((pair_slot, partner))
            removed.sort(key=lambda item: item[0])

        for removed_slot, _ in removed:
            self.session.bushing_counts.pop(slot_key(removed_slot), None)

        logger.info(f"Cleared {card.id} from slot(s) {', '.join(str(s) for s, _ in removed)}")
        return removed

    def auto_include(self) -> List[int]:
        """
        Pre-assign standard cards at their admin positions.

        Positions are trusted; a later entry at the same position replaces an
        earlier one. Standard outside-chassis entries are pre-selected as
        accessories.

        Returns:
            Slots that were filled
        """
        placed = []
        for card_id, entry in self.catalog.code_map.items():
            if not entry.is_standard:
                continue
            card = self.catalog.card(card_id)
            if card is None:
                logger.warning(f"Standard code map entry '{card_id}' has no catalog card")
                continue
            if entry.outside_chassis:
                self.session.select_accessory(card_id)
                continue
            position = entry.standard_position
            if not position:
                continue
            if position > self.chassis.total_slots:
                logger.warning(f"Standard position {position} of '{card_id}' is outside the chassis")
                continue
            if card.is_bushing and position + 1 > self.chassis.total_slots:
                logger.warning(f"Standard bushing '{card_id}' at slot {position} has no slot for its pair")
                continue
            if position in self.assignments:
                logger.warning(f"Standard card '{card_id}' overrides '{self.assignments[position].id}' at slot {position}")

            if card.is_bushing:
                secondary = position + 1
                self.assignments[position] = CardInstance.from_card(
                    card, span=BUSHING_SPAN, is_bushing_primary=True, bushing_pair_slot=secondary)
                self.assignments[secondary] = CardInstance.from_card(
                    card, span=1, is_bushing_secondary=True, bushing_pair_slot=position)
            else:
                self.assignments[position] = CardInstance.from_card(
                    card, span=self.card_span(card, entry))
            placed.append(position)
            logger.debug(f"Auto-included standard card '{card_id}' at slot {position}")
        return placed

    # ========== Candidates ==========

    def candidates_for_slot(self, slot: int, replace: bool = False) -> List[CardDefinition]:
        """Catalog cards that may be placed at ``slot``"""
        return [card for card in self.catalog.cards.values() if self.validate(card, slot, replace)]

    def accessory_candidates(self) -> List[CardDefinition]:
        return self.catalog.accessory_cards()
