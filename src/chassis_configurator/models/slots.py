"""
Slot Models - Card instances placed in a chassis and the slot map

A ``SlotAssignment`` maps slot index -> ``CardInstance``. Multi-slot cards are
keyed only at their head slot and reserve the following ``span - 1`` slots.
Bushing cards are the exception: they are keyed at both slots of their pair,
tagged primary/secondary and pointing at each other.
"""

import copy
import logging
from dataclasses import dataclass, fields
from typing import Any, Dict, Iterator, List, Optional, Set, Tuple

from .catalog import CardDefinition, _to_float, _to_int

logger = logging.getLogger(__name__)


def slot_key(slot: int) -> str:
    """Logical key used for per-slot external data (e.g. bushing counts)"""
    return f"slot-{slot}"


@dataclass
class CardInstance(CardDefinition):
    """A card definition placed in a specific slot"""
    span: int = 1
    is_bushing_primary: bool = False
    is_bushing_secondary: bool = False
    bushing_pair_slot: Optional[int] = None
    level4_config_id: Optional[str] = None
    level4_temp_quote_id: Optional[str] = None
    level4_config: Optional[Dict[str, Any]] = None
    is_shared_level4_config: bool = False

    @classmethod
    def from_card(cls, card: CardDefinition, **extra) -> "CardInstance":
        """Create an instance carrying every field of ``card``"""
        values = {f.name: copy.deepcopy(getattr(card, f.name)) for f in fields(CardDefinition)}
        values.update(extra)
        return cls(**values)

    @property
    def signature(self) -> str:
        """Normalized identity used to detect slot changes"""
        return f"{self.id}::{self.part_number or ''}"

    @property
    def has_level4(self) -> bool:
        return self.level4_config_id is not None

    @property
    def counts_toward_price(self) -> bool:
        return not (self.is_bushing_secondary or self.is_shared_level4_config)


class SlotAssignment:
    """Mapping of slot index -> CardInstance with occupancy helpers"""

    def __init__(self, assignments: Optional[Dict[int, CardInstance]] = None):
        self._slots: Dict[int, CardInstance] = dict(assignments or {})

    # ========== Mapping protocol ==========

    def __getitem__(self, slot: int) -> CardInstance:
        return self._slots[slot]

    def __setitem__(self, slot: int, card: CardInstance) -> None:
        self._slots[slot] = card

    def __delitem__(self, slot: int) -> None:
        del self._slots[slot]

    def __contains__(self, slot: object) -> bool:
        return slot in self._slots

    def __iter__(self) -> Iterator[int]:
        return iter(sorted(self._slots))

    def __len__(self) -> int:
        return len(self._slots)

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, SlotAssignment):
            return NotImplemented
        return self._slots == other._slots

    def __repr__(self) -> str:
        body = ", ".join(f"{slot}: {card.id}" for slot, card in self.items())
        return f"SlotAssignment({{{body}}})"

    def get(self, slot: int) -> Optional[CardInstance]:
        return self._slots.get(slot)

    def pop(self, slot: int, default: Optional[CardInstance] = None) -> Optional[CardInstance]:
        return self._slots.pop(slot, default)

    def items(self) -> List[Tuple[int, CardInstance]]:
        """Slot/card pairs in ascending slot order"""
        return [(slot, self._slots[slot]) for slot in sorted(self._slots)]

    def copy(self) -> "SlotAssignment":
        return SlotAssignment({slot: copy.deepcopy(card) for slot, card in self._slots.items()})

    def clear(self) -> None:
        self._slots.clear()

    # ========== Occupancy ==========

    def covered_slots(self, slot: int) -> List[int]:
        """Slots consumed by the card keyed at ``slot``"""
        card = self._slots.get(slot)
        if card is None:
            return []
        if card.is_bushing_primary or card.is_bushing_secondary:
            return [slot]
        return list(range(slot, slot + max(1, card.span)))

    def occupied_slots(self) -> Set[int]:
        occupied: Set[int] = set()
        for slot in self._slots:
            occupied.update(self.covered_slots(slot))
        return occupied

    def owner_of(self, slot: int) -> Optional[int]:
        """Key slot of the card covering ``slot``, or None when free"""
        if slot in self._slots:
            return slot
        for head in sorted(self._slots):
            if slot in self.covered_slots(head):
                return head
        return None

    def bushing_pairs(self) -> List[Tuple[int, int]]:
        """(primary, secondary) slot pairs of placed bushing cards"""
        return [
            (slot, card.bushing_pair_slot)
            for slot, card in self.items()
            if card.is_bushing_primary and card.bushing_pair_slot is not None
        ]

    def signatures(self) -> Dict[int, str]:
        return {slot: card.signature for slot, card in self.items()}

    # ========== Serialization ==========

    def to_list(self) -> List[Dict[str, Any]]:
        """Serialize to the stored slot snapshot format"""
        result = []
        for slot, card in self.items():
            result.append({
                "slot": slot,
                "productId": card.id,
                "name": card.name,
                "displayName": card.name,
                "partNumber": card.part_number,
                "categoryCode": card.category_code,
                "compatibleChassisTypes": list(card.compatible_chassis_types),
                "price": card.price,
                "cost": card.cost,
                "specifications": copy.deepcopy(card.specifications),
                "hasLevel4Configuration": card.requires_sub_config,
                "level4BomItemId": card.level4_config_id,
                "level4TempQuoteId": card.level4_temp_quote_id,
                "level4Config": copy.deepcopy(card.level4_config),
                "isSharedLevel4Config": card.is_shared_level4_config,
                "isBushingPrimary": card.is_bushing_primary,
                "isBushingSecondary": card.is_bushing_secondary,
                "bushingPairSlot": card.bushing_pair_slot,
                "slotSpan": card.span,
            })
        return result

    @classmethod
    def from_list(cls, stored: Optional[List[Dict[str, Any]]]) -> Optional["SlotAssignment"]:
        """Rebuild from a stored snapshot; returns None when nothing is stored"""
        if not stored:
            return None
        assignment = cls()
        for entry in stored:
            slot = _to_int(entry.get("slot"), -1)
            if slot < 0:
                logger.warning(f"Skipping stored slot entry without a slot index: {entry}")
                continue
            span = max(1, _to_int(entry.get("slotSpan"), 1))
            name = entry.get("displayName") or entry.get("name") or f"Slot {slot} Card"
            pair = entry.get("bushingPairSlot")
            assignment[slot] = CardInstance(
                id=entry.get("productId") or f"slot-{slot}",
                name=name,
                part_number=entry.get("partNumber") or "",
                price=_to_float(entry.get("price")),
                cost=_to_float(entry.get("cost")),
                specifications=copy.deepcopy(entry.get("specifications") or {}),
                category_code=entry.get("categoryCode") or "other",
                compatible_chassis_types=list(entry.get("compatibleChassisTypes") or []),
                slot_span=span,
                requires_sub_config=bool(entry.get("hasLevel4Configuration")),
                span=span,
                is_bushing_primary=bool(entry.get("isBushingPrimary")),
                is_bushing_secondary=bool(entry.get("isBushingSecondary")),
                bushing_pair_slot=_to_int(pair) if pair is not None else None,
                level4_config_id=entry.get("level4BomItemId"),
                level4_temp_quote_id=entry.get("level4TempQuoteId"),
                level4_config=copy.deepcopy(entry.get("level4Config")),
                is_shared_level4_config=bool(entry.get("isSharedLevel4Config")),
            )
        return assignment

    def to_rack_layout(self) -> Optional[Dict[str, Any]]:
        """Summarize as a rack layout (the fallback rehydration source)"""
        if not self._slots:
            return None
        slots = []
        for slot, card in self.items():
            pair = card.bushing_pair_slot
            span = card.span
            if pair is not None:
                span = abs(pair - slot) + 1
            slots.append({
                "slot": slot,
                "productId": card.id,
                "cardName": card.name,
                "partNumber": card.part_number,
                "categoryCode": card.category_code,
                "span": span,
                "isBushingPrimary": card.is_bushing_primary,
                "isBushingSecondary": card.is_bushing_secondary,
                "bushingPairSlot": pair,
                "primarySlot": pair if card.is_bushing_secondary else slot,
                "sharedFromSlot": pair if card.is_bushing_secondary else None,
                "level4BomItemId": card.level4_config_id,
                "level4Config": copy.deepcopy(card.level4_config),
            })
        return {"slots": slots}

    @classmethod
    def from_rack_layout(cls, layout: Optional[Dict[str, Any]]) -> Optional["SlotAssignment"]:
        """Reconstruct from a rack layout summary; returns None for an empty layout"""
        entries = (layout or {}).get("slots") or []
        if not entries:
            return None
        stored = []
        for entry in entries:
            is_secondary = bool(entry.get("isBushingSecondary"))
            pair = entry.get("bushingPairSlot")
            if pair is None and is_secondary:
                pair = entry.get("sharedFromSlot", entry.get("primarySlot"))
            is_bushing = bool(entry.get("isBushingPrimary")) or is_secondary
            span = _to_int(entry.get("span"), 1)
            stored.append({
                "slot": entry.get("slot"),
                "productId": entry.get("productId"),
                "name": entry.get("cardName"),
                "partNumber": entry.get("partNumber"),
                "categoryCode": entry.get("categoryCode") or ("bushing" if is_bushing else None),
                "level4BomItemId": entry.get("level4BomItemId"),
                "level4Config": entry.get("level4Config"),
                "isSharedLevel4Config": is_secondary and entry.get("level4Config") is not None,
                "isBushingPrimary": entry.get("isBushingPrimary"),
                "isBushingSecondary": is_secondary,
                "bushingPairSlot": pair,
                "slotSpan": 1 if is_secondary else span,
            })
        return cls.from_list(stored)
