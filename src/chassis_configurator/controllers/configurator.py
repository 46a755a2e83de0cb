"""
Chassis Configurator

Interactive facade tying the catalog adapter, slot engine, configuration-link
manager, BOM synchronizer and quote controller to one configuration session.

The part number is recomputed explicitly, only after a slot change, a remote
display change or a bushing count change.
"""

import logging
from typing import List, Optional, Tuple

from PyQt6.QtCore import QObject, pyqtSignal

from ..communication.store_base import QuoteStore, StoreError
from ..models.bom import BOMLineItem
from ..models.enums import LinkState, PlacementError
from ..models.session import ConfigurationSession
from ..models.slots import CardInstance, slot_key
from ..utils.decorators import require_session, safe_call
from ..utils.error_handler import ErrorCategory, ErrorHandler, get_error_handler
from ..utils.settings import ConfiguratorSettings
from .bom_sync import BOMLineSynchronizer, derive_part_number
from .catalog_adapter import CatalogAdapter
from .config_links import ConfigLinkManager
from .quote_controller import QuoteController
from .slot_engine import PlacementResult, SlotAssignmentEngine

logger = logging.getLogger(__name__)


class ChassisConfigurator(QObject):
    """
    Configures one chassis at a time and commits it to the current quote.

    Signals:
        slots_changed(): Slot map changed
        part_number_changed(str): Derived part number changed
        sub_config_required(int): Placed card needs a sub-configuration
        notice(str): Non-fatal message for the operator
        committed(object): BOMLineItem committed to the quote
    """

    slots_changed = pyqtSignal()
    part_number_changed = pyqtSignal(str)
    sub_config_required = pyqtSignal(int)
    notice = pyqtSignal(str)
    committed = pyqtSignal(object)

    def __init__(self, store: QuoteStore, quote_controller: Optional[QuoteController] = None,
                 settings: Optional[ConfiguratorSettings] = None,
                 error_handler: Optional[ErrorHandler] = None, parent: QObject = None):
        super().__init__(parent)
        self._store = store
        self._error_handler = error_handler
        self.catalog_adapter = CatalogAdapter(store)
        self.quotes = quote_controller or QuoteController(
            store, settings, BOMLineSynchronizer(store, error_handler), error_handler)
        self.session: Optional[ConfigurationSession] = None
        self.engine: Optional[SlotAssignmentEngine] = None
        self.links: Optional[ConfigLinkManager] = None
        self._retired_links: List[ConfigLinkManager] = []
        self._derivation_warned = False
        self.quotes.quote_loaded.connect(self._on_quote_loaded)

    @property
    def error_handler(self) -> ErrorHandler:
        return self._error_handler or get_error_handler()

    @property
    def sync(self) -> BOMLineSynchronizer:
        return self.quotes.synchronizer

    @property
    def part_number(self) -> str:
        return self.session.part_number if self.session else ""

    def _notify(self, message: str, category: ErrorCategory) -> None:
        self.error_handler.warning(message, category=category)
        self.notice.emit(message)

    def _start_session(self, session: ConfigurationSession) -> None:
        if self.links is not None:
            self._retired_links.append(self.links)
        self.session = session
        self.engine = SlotAssignmentEngine(session)
        self.links = ConfigLinkManager(session, self._store, self.quotes.quote, self._error_handler)
        self._derivation_warned = False

    def _quote_frozen(self) -> bool:
        """The current quote was submitted; it takes no new line items"""
        quote = self.quotes.quote
        if quote is not None and not quote.is_draft:
            self._notify(f"Quote {quote.id} is {quote.status.value} and cannot be changed", ErrorCategory.VALIDATION)
            return True
        return False

    @safe_call(category=ErrorCategory.INTERNAL)
    def _on_quote_loaded(self, quote) -> None:
        if self.links is not None:
            self.links.quote = quote

    # ========== Session lifecycle ==========

    async def select_chassis(self, chassis_id: str) -> Tuple[bool, Optional[str]]:
        """
        Start configuring a chassis; standard cards are pre-assigned.

        Returns:
            Tuple[bool, Optional[str]]: (success, error_message)
        """
        try:
            catalog = await self.catalog_adapter.load(chassis_id)
        except StoreError as e:
            error_msg = f"Failed to load chassis {chassis_id}: {e}"
            self.error_handler.handle_exception(e, error_msg, ErrorCategory.CATALOG)
            return False, error_msg

        if self.session is not None:
            await self.discard()

        self._start_session(ConfigurationSession(catalog=catalog))
        placed = self.engine.auto_include()
        logger.info(f"Selected chassis {chassis_id}, auto-included {len(placed)} standard card(s)")
        self.recompute_part_number()
        self.slots_changed.emit()
        return True, None

    async def edit_line_item(self, line_id: str) -> Tuple[bool, Optional[str]]:
        """
        Rehydrate a stored chassis line item for editing.

        Returns:
            Tuple[bool, Optional[str]]: (success, error_message)
        """
        quote = self.quotes.quote
        if quote is None:
            return False, "No quote loaded"
        if not quote.is_draft:
            return False, f"Quote {quote.id} is {quote.status.value} and cannot be edited"
        line = quote.get_line(line_id)
        if line is None:
            return False, f"Line item not found: {line_id}"

        try:
            catalog = await self.catalog_adapter.load(line.product.id)
        except StoreError as e:
            logger.warning(f"Catalog for {line.product.id} unavailable, using stored rules: {e}")
            catalog = None

        if self.session is not None:
            await self.discard()

        try:
            session = self.sync.begin_edit(quote, line_id, catalog)
        except ValueError as e:
            self._notify(str(e), ErrorCategory.VALIDATION)
            return False, str(e)

        self._start_session(session)
        if catalog is not None:
            missing = self.sync.missing_components(session)
            if missing:
                self._notify(
                    f"Line item {line_id} uses components no longer in the catalog: {', '.join(missing)}",
                    ErrorCategory.VALIDATION
                )
        self.slots_changed.emit()
        self.part_number_changed.emit(session.part_number)
        return True, None

    @require_session
    def commit(self) -> Optional[BOMLineItem]:
        """Commit the session to the current quote (new item or edit)"""
        if self.session.pending_config_links or self.links.is_opening:
            self._notify("Save or cancel the open sub-configuration first", ErrorCategory.VALIDATION)
            return None
        if self._quote_frozen():
            return None

        quote = self.quotes.quote or self.quotes.new_quote()
        self.links.quote = quote
        deferred = list(self.session.deferred_releases)
        try:
            if self.session.is_editing:
                line = self.sync.commit_edit(quote, self.session)
            else:
                line = self.sync.commit_new(quote, self.session)
        except ValueError as e:
            self._notify(str(e), ErrorCategory.VALIDATION)
            return None

        # Records dropped during the edit are no longer referenced
        self.links.delete_records(deferred)
        self.session = None
        self.engine = None
        self.quotes.line_items_changed.emit()
        self.committed.emit(line)
        return line

    async def discard(self) -> None:
        """
        Drop the session.

        Open sub-configurations are cancelled. Records linked in a new,
        uncommitted configuration are released; an edited line item keeps
        its records, including the ones cleared during the edit.
        """
        if self.session is None:
            return
        await self.links.wait_opening()
        for slot in list(self.session.pending_config_links):
            await self.links.cancel(slot)

        if self.session.is_editing:
            if self.session.deferred_releases:
                logger.info(f"Keeping {len(self.session.deferred_releases)} record(s) of the discarded edit")
            self.sync.discard_edit(self.session)
        else:
            self.links.release(self.session.slot_assignments.items())
            self.session.reset()
        self.session = None
        self.engine = None
        logger.info("Configuration discarded")

    async def drain(self) -> None:
        """Wait for background opens and cleanup of released records"""
        retired, self._retired_links = self._retired_links, []
        for links in retired:
            await links.drain()
        if self.links is not None:
            await self.links.drain()

    # ========== Slot operations ==========

    @require_session
    def place_card(self, slot: int, card_id: str, replace: bool = False) -> PlacementResult:
        """
        Place a catalog card; rejections become notices and change nothing.

        A card requiring sub-configuration enters PENDING: its placeholder
        record is opened in the background.
        """
        card = self.session.catalog.card(card_id)
        if card is None:
            result = PlacementResult(
                error=PlacementError.INCOMPATIBLE_CHASSIS,
                slot=slot,
                message=f"Card {card_id} is not offered for this chassis",
            )
        else:
            result = self.engine.assign(card, slot, replace=replace)

        if not result:
            self._notify(result.message, ErrorCategory.PLACEMENT)
            return result

        self.links.release(result.removed)
        self.recompute_part_number()
        self.slots_changed.emit()
        if card.requires_sub_config:
            self.sub_config_required.emit(result.slot)
            if not self._quote_frozen():
                self.links.quote = self.quotes.quote
                self.links.schedule_open(result.slot)
        return result

    @require_session
    def clear_slot(self, slot: int) -> List[Tuple[int, CardInstance]]:
        removed = self.engine.clear(slot)
        if not removed:
            return removed
        self.links.release(removed)
        self.recompute_part_number()
        self.slots_changed.emit()
        return removed

    @require_session
    def set_remote_display(self, enabled: bool) -> None:
        if self.session.has_remote_display == enabled:
            return
        self.session.has_remote_display = enabled
        self.recompute_part_number()

    @require_session
    def set_bushing_count(self, slot: int, count: int) -> None:
        """Record the bushing channel count for the bushing covering ``slot``"""
        card = self.session.slot_assignments.get(slot)
        if card is not None and card.is_bushing_secondary and card.bushing_pair_slot is not None:
            slot = card.bushing_pair_slot
        if count < 0:
            self._notify(f"Bushing count must not be negative, got {count}", ErrorCategory.VALIDATION)
            return
        self.session.bushing_counts[slot_key(slot)] = count
        self.recompute_part_number()

    @require_session
    def toggle_accessory(self, card_id: str) -> bool:
        """
        Select or deselect an outside-chassis accessory.

        Returns:
            True when the accessory is selected afterwards
        """
        if card_id in self.session.accessory_selection:
            self.session.deselect_accessory(card_id)
            return False
        if card_id not in {card.id for card in self.engine.accessory_candidates()}:
            self._notify(f"{card_id} is not an accessory of this chassis", ErrorCategory.PLACEMENT)
            return False
        self.session.select_accessory(card_id)
        return True

    @require_session
    def totals(self) -> Tuple[float, float]:
        return self.sync.compute_totals(self.session)

    @require_session
    def recompute_part_number(self) -> str:
        """
        Derive the part number for the current configuration.

        While editing, an unchanged configuration keeps the stored string.
        """
        session = self.session
        if session.is_editing and not self.sync.has_changes(session):
            part_number = session.edit_baseline.part_number
        else:
            previous = session.edit_baseline.part_number if session.is_editing else None
            part_number = derive_part_number(session, previous=previous)
            if session.catalog.pn_config is None and not self._derivation_warned:
                self._derivation_warned = True
                self._notify(
                    f"Chassis {session.chassis.id} has no part number configuration; keeping {part_number or 'none'}",
                    ErrorCategory.DERIVATION
                )

        if part_number != session.part_number:
            session.part_number = part_number
            self.part_number_changed.emit(part_number)
        return part_number

    # ========== Sub-configuration ==========

    @require_session
    def link_state(self, slot: int) -> LinkState:
        return self.links.state_of(slot)

    async def open_sub_config(self, slot: int) -> Tuple[bool, Optional[str]]:
        if self.session is None:
            return False, "Select a chassis first"
        if self._quote_frozen():
            return False, f"Quote {self.quotes.quote.id} is {self.quotes.quote.status.value} and cannot be changed"
        self.links.quote = self.quotes.quote
        success, error_msg = await self.links.open(slot)
        if not success:
            self.notice.emit(error_msg)
        return success, error_msg

    async def save_sub_config(self, slot: int, payload: dict) -> Tuple[bool, Optional[str]]:
        if self.session is None:
            return False, "Select a chassis first"
        success, error_msg = await self.links.save(slot, payload)
        if success:
            self.slots_changed.emit()
        else:
            self.notice.emit(error_msg)
        return success, error_msg

    async def cancel_sub_config(self, slot: int) -> Tuple[bool, Optional[str]]:
        if self.session is None:
            return True, None
        return await self.links.cancel(slot)
