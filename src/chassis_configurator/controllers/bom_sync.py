"""
BOM Line Synchronizer

Turns a configuration session into quote line items and keeps the quote's
line-item list consistent across repeated edits:

- commit of a new chassis appends the chassis item followed by its accessories
- editing rehydrates a session from the stored snapshot (or rack layout)
- recommitting replaces the chassis item and its accessory run in place,
  regenerating the part number only when the configuration actually changed
- removed items are detected and their durable rows deleted
"""

import copy
import logging
from typing import Collection, List, Optional, Sequence, Tuple

from ..communication.store_base import QuoteStore, StoreError
from ..models.bom import (
    BOMLineItem,
    LineItemConfiguration,
    PartNumberContext,
    Quote,
    new_line_id,
)
from ..models.catalog import ChassisCatalog, Chassis
from ..models.part_number import accessory_part_number, build_part_number
from ..models.session import ConfigurationSession, EditBaseline
from ..models.slots import SlotAssignment
from ..utils.error_handler import ErrorCategory, ErrorHandler, get_error_handler

logger = logging.getLogger(__name__)


def derive_part_number(session: ConfigurationSession, previous: Optional[str] = None) -> str:
    """Part number of the session's current configuration"""
    catalog = session.catalog
    return build_part_number(
        catalog.chassis,
        session.slot_assignments,
        session.has_remote_display,
        catalog.pn_config,
        catalog.code_map,
        session.bushing_counts,
        previous=previous if previous is not None else (session.part_number or None),
    )


class BOMLineSynchronizer:
    """Commit, edit and removal reconciliation for chassis line items"""

    def __init__(self, store: Optional[QuoteStore] = None, error_handler: Optional[ErrorHandler] = None):
        self._store = store
        self._error_handler = error_handler

    @property
    def error_handler(self) -> ErrorHandler:
        return self._error_handler or get_error_handler()

    # ========== Building line items ==========

    @staticmethod
    def compute_totals(session: ConfigurationSession) -> Tuple[float, float]:
        """
        Chassis price/cost plus every placed card once.

        Bushing secondaries and shared sub-configuration slots are skipped.

        Returns:
            Tuple[float, float]: (price, cost)
        """
        chassis = session.chassis
        price = chassis.price
        cost = chassis.cost
        for _, card in session.slot_assignments.items():
            if card.counts_toward_price:
                price += card.price
                cost += card.cost
        return price, cost

    def build_chassis_line(self, session: ConfigurationSession, line_id: Optional[str] = None,
                           part_number: Optional[str] = None) -> BOMLineItem:
        catalog = session.catalog
        price, cost = self.compute_totals(session)
        if part_number is None:
            part_number = derive_part_number(session)
        assignments = session.slot_assignments.copy()
        return BOMLineItem(
            product=copy.deepcopy(catalog.chassis),
            id=line_id or new_line_id(),
            unit_price=price,
            unit_cost=cost,
            part_number=part_number,
            slot_assignments=assignments,
            rack_layout=assignments.to_rack_layout(),
            configuration=LineItemConfiguration(
                has_remote_display=session.has_remote_display,
                bushing_counts=dict(session.bushing_counts),
            ),
            part_number_context=PartNumberContext(
                pn_config=copy.deepcopy(catalog.pn_config),
                code_map=copy.deepcopy(catalog.code_map),
            ),
        )

    def build_accessory_lines(self, session: ConfigurationSession, parent_line_id: str,
                              reuse: Sequence[BOMLineItem] = ()) -> List[BOMLineItem]:
        """
        One line item per selected accessory, in selection order.

        Existing accessory items of the same product keep their id and quantity.
        """
        previous = {item.product.id: item for item in reuse}
        lines = []
        for card_id in session.accessory_selection:
            card = session.catalog.card(card_id)
            if card is None:
                logger.warning(f"Accessory '{card_id}' is not in the catalog, skipping")
                continue
            old = previous.pop(card_id, None)
            lines.append(BOMLineItem(
                product=copy.deepcopy(card),
                id=old.id if old else new_line_id(),
                quantity=old.quantity if old else 1,
                unit_price=card.price,
                unit_cost=card.cost,
                part_number=accessory_part_number(card, session.catalog.entry_for(card_id)),
                is_accessory=True,
                parent_line_id=parent_line_id,
            ))
        return lines

    # ========== Commit ==========

    def commit_new(self, quote: Quote, session: ConfigurationSession) -> BOMLineItem:
        """Append the configured chassis and its accessories, then clear the session"""
        if session.pending_config_links:
            logger.warning(f"Committing with {len(session.pending_config_links)} open sub-configuration(s)")
        line = self.build_chassis_line(session)
        accessories = self.build_accessory_lines(session, line.id)
        quote.line_items.append(line)
        quote.line_items.extend(accessories)
        logger.info(f"Added chassis {line.product.id} as {line.part_number} with {len(accessories)} accessories")
        session.reset()
        return line

    # ========== Edit ==========

    def begin_edit(self, quote: Quote, line_id: str,
                   catalog: Optional[ChassisCatalog] = None) -> ConfigurationSession:
        """
        Rehydrate a session from a stored chassis line item.

        Admin rules come from the context stored with the line item, so an
        edit keeps deriving with the rules it was committed under. The live
        catalog fills in what the stored context lacks and supplies the cards.

        Raises:
            ValueError: Line item missing or not a chassis
        """
        line = quote.get_line(line_id)
        if line is None:
            raise ValueError(f"Line item not found: {line_id}")
        if not line.is_chassis:
            raise ValueError(f"Line item {line_id} is not a configured chassis")

        if line.slot_assignments is not None:
            assignments = line.slot_assignments.copy()
        else:
            assignments = SlotAssignment.from_rack_layout(line.rack_layout) or SlotAssignment()
            logger.info(f"Rebuilt slot map of {line_id} from rack layout")

        context = line.part_number_context or PartNumberContext()
        if catalog is None:
            chassis = line.product if isinstance(line.product, Chassis) else Chassis(id=line.product.id)
            catalog = ChassisCatalog(chassis=chassis)
        edit_catalog = ChassisCatalog(
            chassis=catalog.chassis,
            cards=catalog.cards,
            code_map={**catalog.code_map, **context.code_map},
            pn_config=context.pn_config or catalog.pn_config,
        )

        configuration = line.configuration
        session = ConfigurationSession(
            catalog=edit_catalog,
            slot_assignments=assignments,
            accessory_selection=[item.product.id for item in quote.accessory_run(line_id)],
            has_remote_display=configuration.has_remote_display,
            bushing_counts=dict(configuration.bushing_counts),
            part_number=line.part_number,
            edit_baseline=EditBaseline(
                line_id=line_id,
                part_number=line.part_number,
                has_remote_display=configuration.has_remote_display,
                signatures=assignments.signatures(),
                bushing_counts=dict(configuration.bushing_counts),
                record_ids=frozenset(
                    card.level4_config_id for _, card in assignments.items() if card.level4_config_id
                ),
            ),
        )
        logger.info(f"Editing line item {line_id} ({line.part_number})")
        return session

    @staticmethod
    def missing_components(session: ConfigurationSession) -> List[str]:
        """
        Card ids of the slot map that the catalog no longer offers.

        Each id is reported once, in slot order.
        """
        missing = []
        for _, card in session.slot_assignments.items():
            if session.catalog.card(card.id) is None and card.id not in missing:
                missing.append(card.id)
        return missing

    @staticmethod
    def has_changes(session: ConfigurationSession) -> bool:
        """Slot signatures, remote flag or bushing counts differ from the baseline"""
        baseline = session.edit_baseline
        if baseline is None:
            return True
        return (
            session.slot_assignments.signatures() != baseline.signatures
            or session.has_remote_display != baseline.has_remote_display
            or session.bushing_counts != baseline.bushing_counts
        )

    def commit_edit(self, quote: Quote, session: ConfigurationSession) -> BOMLineItem:
        """
        Replace the edited chassis item and its accessory run in place.

        Raises:
            ValueError: Session is not editing, or the line item is gone
        """
        baseline = session.edit_baseline
        if baseline is None:
            raise ValueError("Session is not editing a line item")
        index = quote.index_of(baseline.line_id)
        if index < 0:
            raise ValueError(f"Line item not found: {baseline.line_id}")

        old_line = quote.line_items[index]
        if self.has_changes(session):
            part_number = derive_part_number(session, previous=baseline.part_number)
            logger.info(f"Configuration changed, part number {baseline.part_number} -> {part_number}")
        else:
            part_number = baseline.part_number

        old_run = quote.accessory_run(old_line.id)
        line = self.build_chassis_line(session, line_id=old_line.id, part_number=part_number)
        line.quantity = old_line.quantity
        line.level4_config = copy.deepcopy(old_line.level4_config)
        accessories = self.build_accessory_lines(session, line.id, reuse=old_run)

        quote.line_items[index:index + 1 + len(old_run)] = [line] + accessories
        session.reset()
        return line

    def discard_edit(self, session: ConfigurationSession) -> None:
        """Drop the edit; the stored line item is untouched"""
        if session.edit_baseline is not None:
            logger.info(f"Discarded edit of line item {session.edit_baseline.line_id}")
        session.reset()

    # ========== Removal ==========

    @staticmethod
    def detect_removed(old_items: Sequence[BOMLineItem],
                       new_items: Sequence[BOMLineItem]) -> List[BOMLineItem]:
        """Items of ``old_items`` missing from ``new_items`` by identity key"""
        remaining = {item.identity_key for item in new_items}
        return [item for item in old_items if item.identity_key not in remaining]

    async def sync_removed(self, quote_id: str,
                           old_items: Sequence[BOMLineItem],
                           new_items: Sequence[BOMLineItem],
                           protected: Collection[str] = ()) -> Tuple[bool, Optional[str]]:
        """
        Delete the durable rows of removed items.

        Args:
            quote_id: Owning quote
            old_items: Line items before the change
            new_items: Line items after the change
            protected: Sub-configuration record ids still in an active session

        Returns:
            Tuple[bool, Optional[str]]: (success, error_message)
        """
        removed = self.detect_removed(old_items, new_items)
        ids = []
        for item in removed:
            record_id = (item.level4_config or {}).get("recordId")
            if record_id is not None and record_id in protected:
                continue
            if item.has_durable_id:
                ids.append(item.id)
        if not ids:
            return True, None
        if self._store is None:
            return False, "No store available"

        try:
            await self._store.delete_line_items(quote_id, ids)
        except StoreError as e:
            error_msg = f"Failed to remove {len(ids)} line item(s): {e}"
            self.error_handler.warning(error_msg, category=ErrorCategory.CLEANUP)
            return False, error_msg

        logger.info(f"Removed {len(ids)} line item(s) from quote {quote_id}")
        return True, None
