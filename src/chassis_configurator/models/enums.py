"""
Configurator Enums - Enumeration types shared by models and controllers

This module contains all Enum classes used by the catalog, slot and quote models.
"""

from enum import Enum, IntEnum


class ProductLevel(IntEnum):
    """Catalog hierarchy level of a product record"""
    PRODUCT = 1      # Product family (e.g. QTMS)
    CHASSIS = 2      # Chassis with physical slots
    CARD = 3         # Card or accessory fitted to a chassis
    SUB_CONFIG = 4   # Per-card sub-configuration ("Level 4")


class CardCategory(Enum):
    """Card categories that drive compatibility and special-case rules"""
    RELAY = "relay"
    ANALOG = "analog"
    FIBER = "fiber"
    DISPLAY = "display"
    BUSHING = "bushing"
    DIGITAL = "digital"
    OTHER = "other"

    @classmethod
    def from_code(cls, code: str) -> "CardCategory":
        """Resolve a category code case-insensitively, unknown codes map to OTHER"""
        try:
            return cls((code or "").strip().lower())
        except ValueError:
            return cls.OTHER


class QuoteStatus(Enum):
    """Quote lifecycle status"""
    DRAFT = "draft"
    PENDING_APPROVAL = "pending_approval"
    APPROVED = "approved"
    REJECTED = "rejected"

    @property
    def is_draft(self) -> bool:
        return self == QuoteStatus.DRAFT


class PlacementError(Enum):
    """Reason a candidate placement was rejected"""
    OK = "ok"
    INCOMPATIBLE_CHASSIS = "incompatible-chassis"
    WRONG_SLOT = "wrong-slot"
    SPAN_UNAVAILABLE = "span-unavailable"
    EXCLUSIVITY_VIOLATED = "exclusivity-violated"
    BUSHING_CONFLICT = "bushing-conflict"


class LinkState(Enum):
    """Sub-configuration link states"""
    NONE = "none"
    PENDING = "pending"              # Placeholder record created, not saved yet
    LINKED = "linked"                # Payload attached to the slot
    CANCELLED = "cancelled"          # Placeholder discarded
    RECONFIGURING = "reconfiguring"  # Linked record reopened for editing
