"""
BOM Models - Quote line items and quotes

A configured chassis is stored as one ``BOMLineItem`` carrying a snapshot of
its slot map, the admin part-number context it was derived with, and the
derived part number. Accessory line items follow their chassis item directly.
"""

import copy
import uuid
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from .catalog import (
    Chassis,
    CodeMap,
    PartNumberConfig,
    ProductBase,
    code_map_from_dict,
    code_map_to_dict,
    product_from_dict,
    _to_float,
    _to_int,
)
from .enums import QuoteStatus
from .slots import SlotAssignment


def new_line_id() -> str:
    return str(uuid.uuid4())


@dataclass
class LineItemConfiguration:
    """Chassis-level options stored with the line item"""
    has_remote_display: bool = False
    bushing_counts: Dict[str, int] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "hasRemoteDisplay": self.has_remote_display,
            "bushingCounts": dict(self.bushing_counts),
        }

    @classmethod
    def from_dict(cls, data: Optional[Dict[str, Any]]) -> "LineItemConfiguration":
        data = data or {}
        return cls(
            has_remote_display=bool(data.get("hasRemoteDisplay", False)),
            bushing_counts={str(k): _to_int(v) for k, v in (data.get("bushingCounts") or {}).items()},
        )


@dataclass
class PartNumberContext:
    """Admin rules snapshotted at commit time"""
    pn_config: Optional[PartNumberConfig] = None
    code_map: CodeMap = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "pnConfig": self.pn_config.to_dict() if self.pn_config else None,
            "codeMap": code_map_to_dict(self.code_map),
        }

    @classmethod
    def from_dict(cls, data: Optional[Dict[str, Any]]) -> Optional["PartNumberContext"]:
        if not data:
            return None
        return cls(
            pn_config=PartNumberConfig.from_dict(data.get("pnConfig")),
            code_map=code_map_from_dict(data.get("codeMap")),
        )


@dataclass
class BOMLineItem:
    """One quote line: a configured chassis, an accessory, or a plain product"""
    product: ProductBase
    id: str = ""
    quantity: int = 1
    unit_price: float = 0.0
    unit_cost: float = 0.0
    part_number: str = ""
    slot_assignments: Optional[SlotAssignment] = None
    rack_layout: Optional[Dict[str, Any]] = None
    is_accessory: bool = False
    parent_line_id: Optional[str] = None
    configuration: LineItemConfiguration = field(default_factory=LineItemConfiguration)
    level4_config: Optional[Dict[str, Any]] = None
    part_number_context: Optional[PartNumberContext] = None
    is_placeholder: bool = False
    enabled: bool = True

    @property
    def is_chassis(self) -> bool:
        if isinstance(self.product, Chassis):
            return True
        return self.slot_assignments is not None or self.rack_layout is not None

    @property
    def has_durable_id(self) -> bool:
        return bool(self.id)

    @property
    def identity_key(self) -> str:
        """Durable id, or ``productId::partNumber`` for unsaved items"""
        if self.id:
            return self.id
        return f"{self.product.id}::{self.part_number}"

    @property
    def total_price(self) -> float:
        return self.unit_price * self.quantity

    @property
    def total_cost(self) -> float:
        return self.unit_cost * self.quantity

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for JSON serialization"""
        return {
            "id": self.id,
            "product": self.product.to_dict(),
            "quantity": self.quantity,
            "unitPrice": self.unit_price,
            "unitCost": self.unit_cost,
            "partNumber": self.part_number,
            "slotAssignments": self.slot_assignments.to_list() if self.slot_assignments else None,
            "rackLayout": copy.deepcopy(self.rack_layout),
            "isAccessory": self.is_accessory,
            "parentLineId": self.parent_line_id,
            "configuration": self.configuration.to_dict(),
            "level4Config": copy.deepcopy(self.level4_config),
            "partNumberContext": self.part_number_context.to_dict() if self.part_number_context else None,
            "isPlaceholder": self.is_placeholder,
            "enabled": self.enabled,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "BOMLineItem":
        """Create from dictionary"""
        if not data.get("product"):
            raise ValueError("Line item missing required 'product' field")
        return cls(
            product=product_from_dict(data["product"]),
            id=data.get("id") or "",
            quantity=_to_int(data.get("quantity"), 1),
            unit_price=_to_float(data.get("unitPrice")),
            unit_cost=_to_float(data.get("unitCost")),
            part_number=data.get("partNumber") or "",
            slot_assignments=SlotAssignment.from_list(data.get("slotAssignments")),
            rack_layout=copy.deepcopy(data.get("rackLayout")),
            is_accessory=bool(data.get("isAccessory", False)),
            parent_line_id=data.get("parentLineId"),
            configuration=LineItemConfiguration.from_dict(data.get("configuration")),
            level4_config=copy.deepcopy(data.get("level4Config")),
            part_number_context=PartNumberContext.from_dict(data.get("partNumberContext")),
            is_placeholder=bool(data.get("isPlaceholder", False)),
            enabled=bool(data.get("enabled", True)),
        )


@dataclass
class Quote:
    """Quote document holding an ordered list of line items"""
    id: str
    status: QuoteStatus = QuoteStatus.DRAFT
    line_items: List[BOMLineItem] = field(default_factory=list)
    cloned_from: Optional[str] = None

    @property
    def is_draft(self) -> bool:
        return self.status.is_draft

    def index_of(self, line_id: str) -> int:
        """Index of a line item by id, returns -1 if not found"""
        for i, item in enumerate(self.line_items):
            if item.id == line_id:
                return i
        return -1

    def get_line(self, line_id: str) -> Optional[BOMLineItem]:
        index = self.index_of(line_id)
        return self.line_items[index] if index >= 0 else None

    def accessory_run(self, line_id: str) -> List[BOMLineItem]:
        """Accessory items directly following the given chassis item"""
        index = self.index_of(line_id)
        if index < 0:
            return []
        run = []
        for item in self.line_items[index + 1:]:
            if not item.is_accessory:
                break
            run.append(item)
        return run

    def billable_items(self) -> List[BOMLineItem]:
        return [item for item in self.line_items if item.enabled and not item.is_placeholder]

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "status": self.status.value,
            "lineItems": [item.to_dict() for item in self.line_items],
            "clonedFrom": self.cloned_from,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Quote":
        return cls(
            id=data["id"],
            status=QuoteStatus(data.get("status", QuoteStatus.DRAFT.value)),
            line_items=[BOMLineItem.from_dict(item) for item in data.get("lineItems") or []],
            cloned_from=data.get("clonedFrom"),
        )
