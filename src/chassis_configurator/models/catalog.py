"""
Catalog Models - Products, chassis, cards and admin part-number rules

Raw catalog records arrive with several historical spellings for the same
field (``id``/``product_id``/``productId``, ``type``/``chassisType`` ...).
They are normalised exactly once, in ``normalize_record``, and every other
module works with the canonical dataclasses defined here.
"""

import logging
from dataclasses import dataclass, field
from typing import Any, ClassVar, Dict, Iterable, List, Optional, Set, Type

from .enums import CardCategory, ProductLevel

logger = logging.getLogger(__name__)


# ============================================================================
# Record normalisation
# ============================================================================

FIELD_ALIASES: Dict[str, tuple] = {
    "id": ("id", "product_id", "productId", "level3_product_id", "level2_product_id"),
    "name": ("name", "displayName", "display_name"),
    "level": ("level", "product_level", "productLevel"),
    "part_number": ("partNumber", "part_number"),
    "parent_product_id": ("parentProductId", "parent_product_id"),
    "type_code": ("typeCode", "type_code", "chassisType", "chassis_type", "type"),
    "total_slots": ("totalSlots", "total_slots"),
    "layout_rows": ("layoutRows", "layout_rows"),
    "category_code": ("categoryCode", "category_code", "card_type", "type"),
    "compatible_chassis_types": (
        "compatibleChassisTypes", "compatible_chassis_types",
        "compatibleChassis", "compatible_chassis",
    ),
    "slot_span": ("slotSpan", "slot_span", "slotRequirement", "slot_requirement"),
    "requires_sub_config": (
        "requiresSubConfig", "requires_level4_config", "has_level4", "hasLevel4Configuration",
    ),
}


def _first(record: Dict[str, Any], keys: Iterable[str], default: Any = None) -> Any:
    """Return the first present, non-None value among ``keys``"""
    for key in keys:
        value = record.get(key)
        if value is not None:
            return value
    return default


def _to_int(value: Any, default: int = 0) -> int:
    try:
        return int(value)
    except (TypeError, ValueError):
        return default


def _to_float(value: Any, default: float = 0.0) -> float:
    try:
        return float(value)
    except (TypeError, ValueError):
        return default


def normalize_record(record: Dict[str, Any]) -> Dict[str, Any]:
    """
    Collapse a raw catalog record into the canonical field names.

    Args:
        record: Record as returned by the catalog collaborator

    Returns:
        Dict keyed by the canonical snake_case names
    """
    specs = dict(record.get("specifications") or {})
    result: Dict[str, Any] = {
        canonical: _first(record, aliases)
        for canonical, aliases in FIELD_ALIASES.items()
    }
    result["id"] = str(result["id"]) if result["id"] is not None else ""
    result["name"] = result["name"] or result["id"]
    result["description"] = record.get("description", "") or ""
    result["price"] = _to_float(record.get("price"))
    result["cost"] = _to_float(record.get("cost"))
    result["enabled"] = bool(record.get("enabled", True))
    result["specifications"] = specs

    # Chassis slot count historically lived inside specifications
    if result["total_slots"] is None:
        result["total_slots"] = specs.get("slots")
    if result["slot_span"] is None:
        result["slot_span"] = specs.get("slotRequirement")
    return result


# ============================================================================
# Chassis layouts
# ============================================================================

CONTROLLER_SLOT = 0
DEFAULT_SLOTS_PER_ROW = 8

# Slot reservations applied when no admin rule covers the slot
FIXED_SLOT_CATEGORIES: Dict[int, Dict[int, CardCategory]] = {
    14: {8: CardCategory.DISPLAY},
}


def generate_default_layout(total_slots: int) -> List[List[int]]:
    """
    Build the fallback slot layout for a chassis without admin layout rows.

    Row lists include the controller slot 0. A 14-slot chassis is laid out as
    two rows, 0-7 and 8-14; every other size is chunked into rows of up to
    eight slots.
    """
    if total_slots == 14:
        return [list(range(0, 8)), list(range(8, 15))]
    slots = list(range(total_slots + 1))
    per_row = min(DEFAULT_SLOTS_PER_ROW, len(slots)) or 1
    return [slots[i:i + per_row] for i in range(0, len(slots), per_row)]


def validate_layout_rows(layout_rows: List[List[int]], total_slots: int) -> bool:
    """Layout rows must contain every slot 0..total_slots exactly once"""
    flat = [slot for row in layout_rows for slot in row]
    return sorted(flat) == list(range(total_slots + 1))


# ============================================================================
# Product hierarchy
# ============================================================================

@dataclass
class ProductBase:
    """Fields shared by every catalog level"""
    id: str
    name: str = ""
    description: str = ""
    price: float = 0.0
    cost: float = 0.0
    part_number: str = ""
    enabled: bool = True
    specifications: Dict[str, Any] = field(default_factory=dict)

    level: ClassVar[ProductLevel] = ProductLevel.PRODUCT

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for JSON serialization"""
        return {
            "id": self.id,
            "name": self.name,
            "level": int(self.level),
            "description": self.description,
            "price": self.price,
            "cost": self.cost,
            "partNumber": self.part_number,
            "enabled": self.enabled,
            "specifications": dict(self.specifications),
        }

    @classmethod
    def _base_kwargs(cls, data: Dict[str, Any]) -> Dict[str, Any]:
        return {
            "id": data["id"],
            "name": data["name"],
            "description": data["description"],
            "price": data["price"],
            "cost": data["cost"],
            "part_number": data["part_number"] or "",
            "enabled": data["enabled"],
            "specifications": data["specifications"],
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ProductBase":
        """Create from a raw or serialized record"""
        normalized = normalize_record(data)
        if not normalized["id"]:
            raise ValueError("Product record missing required 'id' field")
        return cls(**cls._base_kwargs(normalized))


@dataclass
class Level1Product(ProductBase):
    """Product family, e.g. the QTMS monitoring system"""
    level: ClassVar[ProductLevel] = ProductLevel.PRODUCT


@dataclass
class Chassis(ProductBase):
    """Level 2 chassis with a fixed number of physical slots"""
    type_code: str = ""
    total_slots: int = 0
    layout_rows: Optional[List[List[int]]] = None
    parent_product_id: str = ""

    level: ClassVar[ProductLevel] = ProductLevel.CHASSIS

    @property
    def height(self) -> Optional[Any]:
        return self.specifications.get("height")

    @property
    def rows(self) -> List[List[int]]:
        """Admin layout rows, or the fixed per-size fallback"""
        if self.layout_rows and validate_layout_rows(self.layout_rows, self.total_slots):
            return self.layout_rows
        if self.layout_rows:
            logger.warning(f"Ignoring invalid layout rows for chassis '{self.id}'")
        return generate_default_layout(self.total_slots)

    def selectable_slots(self) -> List[int]:
        """Slots an operator may target, in layout order (controller excluded)"""
        return [slot for row in self.rows for slot in row if slot != CONTROLLER_SLOT]

    def row_of(self, slot: int) -> Optional[List[int]]:
        for row in self.rows:
            if slot in row:
                return row
        return None

    def fixed_category_for(self, slot: int) -> Optional[CardCategory]:
        """Category reserved for a slot by the chassis-size fallback rules"""
        return FIXED_SLOT_CATEGORIES.get(self.total_slots, {}).get(slot)

    def to_dict(self) -> Dict[str, Any]:
        data = super().to_dict()
        data["typeCode"] = self.type_code
        data["totalSlots"] = self.total_slots
        data["layoutRows"] = self.layout_rows
        data["parentProductId"] = self.parent_product_id
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Chassis":
        normalized = normalize_record(data)
        if not normalized["id"]:
            raise ValueError("Chassis record missing required 'id' field")
        layout = normalized["layout_rows"]
        return cls(
            **cls._base_kwargs(normalized),
            type_code=str(normalized["type_code"] or "").upper(),
            total_slots=_to_int(normalized["total_slots"]),
            layout_rows=[list(row) for row in layout] if layout else None,
            parent_product_id=normalized["parent_product_id"] or "",
        )


@dataclass
class CardDefinition(ProductBase):
    """Level 3 card or accessory that can be fitted to a chassis"""
    category_code: str = "other"
    compatible_chassis_types: List[str] = field(default_factory=list)
    slot_span: int = 1
    requires_sub_config: bool = False
    parent_product_id: str = ""

    level: ClassVar[ProductLevel] = ProductLevel.CARD

    @property
    def category(self) -> CardCategory:
        return CardCategory.from_code(self.category_code)

    @property
    def is_bushing(self) -> bool:
        return self.category == CardCategory.BUSHING

    @property
    def input_count(self) -> Any:
        return self.specifications.get("inputs", "")

    def is_compatible_with(self, chassis_type: str) -> bool:
        wanted = (chassis_type or "").lower()
        return any((t or "").lower() == wanted for t in self.compatible_chassis_types)

    def to_dict(self) -> Dict[str, Any]:
        data = super().to_dict()
        data["categoryCode"] = self.category_code
        data["compatibleChassisTypes"] = list(self.compatible_chassis_types)
        data["slotSpan"] = self.slot_span
        data["requiresSubConfig"] = self.requires_sub_config
        data["parentProductId"] = self.parent_product_id
        return data

    @classmethod
    def _card_kwargs(cls, normalized: Dict[str, Any]) -> Dict[str, Any]:
        kwargs = cls._base_kwargs(normalized)
        kwargs.update(
            category_code=str(normalized["category_code"] or "other").lower(),
            compatible_chassis_types=list(normalized["compatible_chassis_types"] or []),
            slot_span=max(1, _to_int(normalized["slot_span"], 1)),
            requires_sub_config=bool(normalized["requires_sub_config"]),
            parent_product_id=normalized["parent_product_id"] or "",
        )
        return kwargs

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "CardDefinition":
        normalized = normalize_record(data)
        if not normalized["id"]:
            raise ValueError("Card record missing required 'id' field")
        return cls(**cls._card_kwargs(normalized))


PRODUCT_CLASS_MAP: Dict[ProductLevel, Type[ProductBase]] = {
    ProductLevel.PRODUCT: Level1Product,
    ProductLevel.CHASSIS: Chassis,
    ProductLevel.CARD: CardDefinition,
}


def product_from_dict(data: Dict[str, Any]) -> ProductBase:
    """Create the level-specific product for a record (defaults to level 1)"""
    level = ProductLevel(_to_int(_first(data, FIELD_ALIASES["level"]), 1))
    product_class = PRODUCT_CLASS_MAP.get(level)
    if product_class is None:
        raise ValueError(f"Unsupported product level: {level}")
    return product_class.from_dict(data)


# ============================================================================
# Admin rules
# ============================================================================

def _parse_positions(value: Any) -> List[int]:
    """Designated positions arrive as a list or as the admin "3, 5" string"""
    if value is None:
        return []
    if isinstance(value, str):
        parts = [p.strip() for p in value.split(",")]
        return [int(p) for p in parts if p.lstrip("-").isdigit()]
    return [_to_int(v) for v in value]


@dataclass
class CodeMapEntry:
    """Admin rule governing where a card may sit and how it is encoded"""
    template: str = "X"
    slot_span: Optional[int] = None  # None defers to the card's own span
    is_standard: bool = False
    standard_position: Optional[int] = None
    designated_only: bool = False
    designated_positions: List[int] = field(default_factory=list)
    outside_chassis: bool = False
    exclusive_in_slots: bool = False
    color: Optional[str] = None
    notes: Optional[str] = None

    @property
    def is_controller(self) -> bool:
        return self.standard_position == CONTROLLER_SLOT

    def to_dict(self) -> Dict[str, Any]:
        return {
            "template": self.template,
            "slot_span": self.slot_span,
            "is_standard": self.is_standard,
            "standard_position": self.standard_position,
            "designated_only": self.designated_only,
            "designated_positions": list(self.designated_positions),
            "outside_chassis": self.outside_chassis,
            "exclusive_in_slots": self.exclusive_in_slots,
            "color": self.color,
            "notes": self.notes,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "CodeMapEntry":
        standard_position = _first(data, ("standard_position", "standardPosition"))
        slot_span = _first(data, ("slot_span", "slotSpan"))
        return cls(
            template=_first(data, ("template",)) or "X",
            slot_span=max(1, _to_int(slot_span, 1)) if slot_span is not None else None,
            is_standard=bool(_first(data, ("is_standard", "isStandard"), False)),
            standard_position=_to_int(standard_position) if standard_position is not None else None,
            designated_only=bool(_first(data, ("designated_only", "designatedOnly"), False)),
            designated_positions=_parse_positions(
                _first(data, ("designated_positions", "designatedPositions", "designated_positions_str"))
            ),
            outside_chassis=bool(_first(data, ("outside_chassis", "outsideChassis"), False)),
            exclusive_in_slots=bool(_first(data, ("exclusive_in_slots", "exclusiveInSlots"), False)),
            color=_first(data, ("color",)),
            notes=_first(data, ("notes",)),
        )


CodeMap = Dict[str, CodeMapEntry]


def code_map_from_dict(data: Optional[Dict[str, Dict[str, Any]]]) -> CodeMap:
    return {str(card_id): CodeMapEntry.from_dict(entry or {}) for card_id, entry in (data or {}).items()}


def code_map_to_dict(code_map: Optional[CodeMap]) -> Dict[str, Dict[str, Any]]:
    return {card_id: entry.to_dict() for card_id, entry in (code_map or {}).items()}


@dataclass
class PartNumberConfig:
    """Admin part-number format for one chassis"""
    prefix: str = ""
    slot_placeholder: str = "0"
    slot_count: int = 0
    suffix_separator: str = "-"
    remote_on_code: str = "D1"
    remote_off_code: str = "0"

    def to_dict(self) -> Dict[str, Any]:
        return {
            "prefix": self.prefix,
            "slot_placeholder": self.slot_placeholder,
            "slot_count": self.slot_count,
            "suffix_separator": self.suffix_separator,
            "remote_on_code": self.remote_on_code,
            "remote_off_code": self.remote_off_code,
        }

    @classmethod
    def from_dict(cls, data: Optional[Dict[str, Any]]) -> Optional["PartNumberConfig"]:
        """Returns None for a missing configuration"""
        if not data:
            return None
        return cls(
            prefix=_first(data, ("prefix",), ""),
            slot_placeholder=_first(data, ("slot_placeholder", "slotPlaceholder"), "0"),
            slot_count=_to_int(_first(data, ("slot_count", "slotCount")), 0),
            suffix_separator=_first(data, ("suffix_separator", "suffixSeparator"), "-"),
            remote_on_code=_first(data, ("remote_on_code", "remoteOnCode"), "D1"),
            remote_off_code=_first(data, ("remote_off_code", "remoteOffCode"), "0"),
        )


# ============================================================================
# Per-chassis catalog bundle
# ============================================================================

@dataclass
class ChassisCatalog:
    """Everything the engine needs to configure one chassis"""
    chassis: Chassis
    cards: Dict[str, CardDefinition] = field(default_factory=dict)
    code_map: CodeMap = field(default_factory=dict)
    pn_config: Optional[PartNumberConfig] = None

    def card(self, card_id: str) -> Optional[CardDefinition]:
        return self.cards.get(card_id)

    def entry_for(self, card_id: str) -> Optional[CodeMapEntry]:
        return self.code_map.get(card_id)

    def exclusive_cards_for_slot(self, slot: int) -> Set[str]:
        """Card ids holding an exclusive claim on ``slot`` (empty if none)"""
        return {
            card_id for card_id, entry in self.code_map.items()
            if entry.exclusive_in_slots and slot in entry.designated_positions
        }

    def accessory_cards(self) -> List[CardDefinition]:
        """Outside-chassis cards, in catalog order"""
        return [
            card for card_id, card in self.cards.items()
            if self.code_map.get(card_id) is not None and self.code_map[card_id].outside_chassis
        ]
