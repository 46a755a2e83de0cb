"""
Configuration Session

Explicit container for the ephemeral state of one chassis being configured.
The slot engine, link manager, part number builder and BOM synchronizer all
receive the same session object by reference.
"""

from dataclasses import dataclass, field
from typing import Dict, FrozenSet, List, Optional

from .catalog import ChassisCatalog
from .enums import LinkState
from .slots import SlotAssignment


@dataclass
class ConfigLink:
    """Sub-configuration link for one slot"""
    slot: int
    card_id: str
    state: LinkState = LinkState.NONE
    record_id: Optional[str] = None
    temp_quote_id: Optional[str] = None
    placeholder_line_id: Optional[str] = None


@dataclass
class EditBaseline:
    """State of a stored line item when editing began"""
    line_id: str
    part_number: str
    has_remote_display: bool
    signatures: Dict[int, str] = field(default_factory=dict)
    bushing_counts: Dict[str, int] = field(default_factory=dict)
    record_ids: FrozenSet[str] = frozenset()  # Sub-configuration records of the stored item


@dataclass
class ConfigurationSession:
    """Ephemeral configuration of one chassis"""
    catalog: ChassisCatalog
    slot_assignments: SlotAssignment = field(default_factory=SlotAssignment)
    accessory_selection: List[str] = field(default_factory=list)
    has_remote_display: bool = False
    bushing_counts: Dict[str, int] = field(default_factory=dict)
    pending_config_links: Dict[int, ConfigLink] = field(default_factory=dict)
    part_number: str = ""
    edit_baseline: Optional[EditBaseline] = None
    deferred_releases: List[str] = field(default_factory=list)

    @property
    def chassis(self):
        return self.catalog.chassis

    @property
    def is_editing(self) -> bool:
        return self.edit_baseline is not None

    def select_accessory(self, card_id: str) -> None:
        if card_id not in self.accessory_selection:
            self.accessory_selection.append(card_id)

    def deselect_accessory(self, card_id: str) -> None:
        if card_id in self.accessory_selection:
            self.accessory_selection.remove(card_id)

    def reset(self) -> None:
        """Drop all ephemeral configuration state"""
        self.slot_assignments.clear()
        self.accessory_selection.clear()
        self.has_remote_display = False
        self.bushing_counts.clear()
        self.pending_config_links.clear()
        self.part_number = ""
        self.edit_baseline = None
        self.deferred_releases.clear()
