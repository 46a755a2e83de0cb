"""
Configuration-Link Manager

Lifecycle of the per-slot sub-configuration ("Level 4") records:

    NONE -> PENDING -> LINKED
            PENDING -> CANCELLED
    LINKED -> RECONFIGURING -> LINKED

A placeholder record is created in the store when a sub-configuration is
opened, so the editor has a stable id to attach values to. While open, the
record is an active session and is never removed by background cleanup.

Bushing cards own one record for the pair. It lives on the primary slot and
the secondary mirrors it with ``is_shared_level4_config`` set.
"""

import asyncio
import copy
import logging
import uuid
from typing import Any, Dict, FrozenSet, Iterable, List, Optional, Set, Tuple

from ..communication.store_base import QuoteStore, StoreError
from ..models.bom import BOMLineItem, Quote, new_line_id
from ..models.enums import LinkState
from ..models.session import ConfigLink, ConfigurationSession
from ..models.slots import CardInstance
from ..utils.decorators import safe_async_call
from ..utils.error_handler import ErrorCategory, ErrorHandler, ErrorSeverity, get_error_handler

logger = logging.getLogger(__name__)

OPEN_STATES = (LinkState.PENDING, LinkState.RECONFIGURING)


class ConfigLinkManager:
    """
    Opens, saves, cancels and releases sub-configuration records for a session.

    Usage:
        links = ConfigLinkManager(session, store, quote)
        ok, error = await links.open(4)
        ok, error = await links.save(4, {"channels": [...]})
    """

    def __init__(self, session: ConfigurationSession, store: QuoteStore,
                 quote: Optional[Quote] = None, error_handler: Optional[ErrorHandler] = None):
        self.session = session
        self.quote = quote
        self._store = store
        self._error_handler = error_handler
        self._active_sessions: Set[str] = set()
        self._released: Set[str] = set()
        self._cleanup_tasks: Set[asyncio.Task] = set()
        self._opening: Dict[int, asyncio.Task] = {}

    @property
    def error_handler(self) -> ErrorHandler:
        return self._error_handler or get_error_handler()

    @property
    def active_sessions(self) -> FrozenSet[str]:
        """Record ids currently protected from cleanup"""
        return frozenset(self._active_sessions)

    @property
    def pending_cleanups(self) -> int:
        return len(self._cleanup_tasks)

    @property
    def is_opening(self) -> bool:
        """A scheduled open has not finished yet"""
        return any(not task.done() for task in self._opening.values())

    def is_active(self, record_id: Optional[str]) -> bool:
        return record_id is not None and record_id in self._active_sessions

    # ========== State ==========

    def primary_slot(self, slot: int) -> int:
        """Bushing secondaries redirect to their primary"""
        card = self.session.slot_assignments.get(slot)
        if card is not None and card.is_bushing_secondary and card.bushing_pair_slot is not None:
            return card.bushing_pair_slot
        return slot

    def link_for(self, slot: int) -> Optional[ConfigLink]:
        return self.session.pending_config_links.get(self.primary_slot(slot))

    def state_of(self, slot: int) -> LinkState:
        link = self.link_for(slot)
        if link is not None:
            return link.state
        card = self.session.slot_assignments.get(self.primary_slot(slot))
        if card is not None and card.has_level4:
            return LinkState.LINKED
        return LinkState.NONE

    def can_configure(self, slot: int) -> bool:
        """Secondaries of a bushing pair never show their own configure action"""
        card = self.session.slot_assignments.get(slot)
        return card is not None and card.requires_sub_config and not card.is_bushing_secondary

    # ========== Lifecycle ==========

    async def open(self, slot: int) -> Tuple[bool, Optional[str]]:
        """
        Open the sub-configuration of a slot.

        Creates a placeholder record for a slot without one (PENDING), or
        reuses the linked record (RECONFIGURING).

        Returns:
            Tuple[bool, Optional[str]]: (success, error_message)
        """
        primary = self.primary_slot(slot)
        card = self.session.slot_assignments.get(primary)
        if card is None:
            return False, f"Slot {slot} is empty"
        if not card.requires_sub_config:
            return False, f"{card.name} has no sub-configuration"

        opening = self._opening.get(primary)
        if opening is not None and opening is not asyncio.current_task() and not opening.done():
            return await asyncio.shield(opening)

        existing = self.session.pending_config_links.get(primary)
        if existing is not None and existing.state in OPEN_STATES:
            return True, None

        if card.has_level4:
            link = ConfigLink(
                slot=primary,
                card_id=card.id,
                state=LinkState.RECONFIGURING,
                record_id=card.level4_config_id,
                temp_quote_id=card.level4_temp_quote_id,
            )
            self.session.pending_config_links[primary] = link
            self._active_sessions.add(link.record_id)
            logger.info(f"Reconfiguring slot {primary} record {link.record_id}")
            return True, None

        quote_id = self.quote.id if self.quote is not None else f"TEMP-{uuid.uuid4().hex[:8]}"
        try:
            record_id = await self._store.create_level4_placeholder(quote_id, card.id, primary)
        except StoreError as e:
            error_msg = f"Failed to start configuration for {card.name}: {e}"
            self.error_handler.handle_exception(e, error_msg, ErrorCategory.PERSISTENCE)
            return False, error_msg

        if self.session.slot_assignments.get(primary) is not card:
            logger.info(f"Slot {primary} changed while opening, discarding record {record_id}")
            self._spawn_cleanup(record_id)
            return False, f"Slot {primary} no longer holds {card.name}"

        link = ConfigLink(
            slot=primary,
            card_id=card.id,
            state=LinkState.PENDING,
            record_id=record_id,
            temp_quote_id=None if self.quote is not None else quote_id,
        )
        link.placeholder_line_id = self._add_placeholder_line(card, record_id)
        self.session.pending_config_links[primary] = link
        self._active_sessions.add(record_id)
        logger.info(f"Opened sub-configuration for slot {primary}: record {record_id}")
        return True, None

    def schedule_open(self, slot: int) -> Optional[asyncio.Task]:
        """
        Open the sub-configuration of a freshly placed card in the background.

        A later ``open`` of the same slot waits for this one instead of
        creating a second placeholder. Without a running event loop the open
        runs before returning.
        """
        primary = self.primary_slot(slot)
        task = self._opening.get(primary)
        if task is not None and not task.done():
            return task

        try:
            asyncio.get_running_loop()
        except RuntimeError:
            asyncio.run(self.open(primary))
            return None

        task = asyncio.ensure_future(self.open(primary))
        self._opening[primary] = task
        task.add_done_callback(lambda done, key=primary: self._forget_open(key, done))
        return task

    async def wait_opening(self) -> None:
        """Wait for every background open to finish"""
        while self.is_opening:
            await asyncio.gather(*list(self._opening.values()), return_exceptions=True)

    async def save(self, slot: int, payload: Dict[str, Any]) -> Tuple[bool, Optional[str]]:
        """
        Persist the payload and link it to the slot.

        On failure the link stays open so the values can be saved again.

        Returns:
            Tuple[bool, Optional[str]]: (success, error_message)
        """
        primary = self.primary_slot(slot)
        link = self.session.pending_config_links.get(primary)
        if link is None or link.state not in OPEN_STATES:
            return False, f"No open configuration for slot {slot}"

        card = self.session.slot_assignments.get(primary)
        if card is None or card.id != link.card_id:
            return False, f"Slot {primary} no longer holds {link.card_id}"

        try:
            await self._store.save_level4_config(link.record_id, payload)
        except StoreError as e:
            error_msg = f"Failed to save configuration for {card.name}: {e}"
            self.error_handler.handle_exception(e, error_msg, ErrorCategory.PERSISTENCE)
            return False, error_msg

        self._attach(primary, card, link, payload)
        self._drop_placeholder_line(link)
        self._active_sessions.discard(link.record_id)
        link.state = LinkState.LINKED
        del self.session.pending_config_links[primary]
        logger.info(f"Linked record {link.record_id} to slot {primary}")
        return True, None

    async def cancel(self, slot: int) -> Tuple[bool, Optional[str]]:
        """
        Close an open sub-configuration without saving.

        A pending placeholder is force-deleted; the deletion is shielded so it
        finishes even when the caller is cancelled. A reconfigured link keeps
        its record. Cleanup failures are logged and never fail the cancel.
        """
        primary = self.primary_slot(slot)
        link = self.session.pending_config_links.pop(primary, None)
        if link is None:
            return True, None

        if link.state == LinkState.RECONFIGURING:
            self._active_sessions.discard(link.record_id)
            link.state = LinkState.LINKED
            logger.info(f"Closed reconfiguration of slot {primary}, record kept")
            return True, None

        link.state = LinkState.CANCELLED
        self._drop_placeholder_line(link)
        self._active_sessions.discard(link.record_id)
        task = self._spawn_cleanup(link.record_id)
        if task is not None:
            await asyncio.shield(task)
        logger.info(f"Cancelled sub-configuration for slot {primary}")
        return True, None

    def release(self, removed: Iterable[Tuple[int, CardInstance]]) -> List[str]:
        """
        Delete the records of instances cleared from the slot map.

        Deletions run as background tasks, each record id at most once. Without
        a running event loop they are executed before returning.

        While a stored line item is edited, records it references are only
        queued on the session; they are deleted once the edit is committed.

        Returns:
            Record ids scheduled for deletion
        """
        record_ids: List[str] = []
        for slot, instance in removed:
            link = self.session.pending_config_links.pop(slot, None)
            if link is not None:
                self._drop_placeholder_line(link)
                self._active_sessions.discard(link.record_id)
                if link.record_id:
                    record_ids.append(link.record_id)
            if instance.is_bushing_secondary or instance.is_shared_level4_config:
                continue
            if instance.level4_config_id:
                record_ids.append(instance.level4_config_id)

        baseline = self.session.edit_baseline
        if baseline is not None:
            for record_id in [r for r in record_ids if r in baseline.record_ids]:
                record_ids.remove(record_id)
                if record_id not in self.session.deferred_releases:
                    self.session.deferred_releases.append(record_id)
                    logger.debug(f"Deferred removal of record {record_id} until the edit is committed")

        return self.delete_records(record_ids)

    def delete_records(self, record_ids: Iterable[str]) -> List[str]:
        """Schedule deletion of records by id, skipping ones already released"""
        scheduled = []
        for record_id in record_ids:
            if record_id in self._released or record_id in scheduled:
                continue
            scheduled.append(record_id)
        if not scheduled:
            return []

        try:
            asyncio.get_running_loop()
        except RuntimeError:
            asyncio.run(self._delete_all(scheduled))
            return scheduled

        for record_id in scheduled:
            self._spawn_cleanup(record_id)
        return scheduled

    async def drain(self) -> None:
        """Wait for every background open and cleanup to finish"""
        await self.wait_opening()
        while self._cleanup_tasks:
            results = await asyncio.gather(*list(self._cleanup_tasks), return_exceptions=True)
            for result in results:
                if isinstance(result, Exception):
                    logger.error(f"Cleanup task failed: {result}")

    # ========== Internals ==========

    def _attach(self, primary: int, card: CardInstance, link: ConfigLink, payload: Dict[str, Any]) -> None:
        card.level4_config_id = link.record_id
        card.level4_temp_quote_id = link.temp_quote_id
        card.level4_config = copy.deepcopy(payload)

        if card.is_bushing_primary and card.bushing_pair_slot is not None:
            secondary = self.session.slot_assignments.get(card.bushing_pair_slot)
            if secondary is not None:
                secondary.level4_config_id = link.record_id
                secondary.level4_temp_quote_id = link.temp_quote_id
                secondary.level4_config = copy.deepcopy(payload)
                secondary.is_shared_level4_config = True

    def _add_placeholder_line(self, card: CardInstance, record_id: str) -> Optional[str]:
        """Line item hosting an open sub-configuration, removed on save or cancel"""
        if self.quote is None:
            return None
        product = self.session.catalog.card(card.id) or card
        line = BOMLineItem(
            product=copy.deepcopy(product),
            id=new_line_id(),
            unit_price=product.price,
            unit_cost=product.cost,
            part_number=product.part_number,
            level4_config={"recordId": record_id},
            is_placeholder=True,
        )
        self.quote.line_items.append(line)
        return line.id

    def _drop_placeholder_line(self, link: ConfigLink) -> None:
        if self.quote is None or not link.placeholder_line_id:
            return
        index = self.quote.index_of(link.placeholder_line_id)
        if index >= 0:
            del self.quote.line_items[index]
        link.placeholder_line_id = None

    def _spawn_cleanup(self, record_id: Optional[str]) -> Optional[asyncio.Task]:
        if not record_id or record_id in self._released:
            return None
        self._released.add(record_id)
        task = asyncio.ensure_future(self._delete_record(record_id))
        self._cleanup_tasks.add(task)
        task.add_done_callback(self._cleanup_tasks.discard)
        return task

    async def _delete_all(self, record_ids: List[str]) -> None:
        for record_id in record_ids:
            self._released.add(record_id)
            await self._delete_record(record_id)

    def _forget_open(self, slot: int, task: asyncio.Task) -> None:
        if self._opening.get(slot) is task:
            del self._opening[slot]

    @safe_async_call(category=ErrorCategory.CLEANUP, message="Could not remove configuration record",
                     severity=ErrorSeverity.WARNING, default=False)
    async def _delete_record(self, record_id: str) -> bool:
        try:
            await self._store.delete_level4_record(record_id, force=True)
        except StoreError as e:
            self.error_handler.warning(
                f"Could not remove configuration record {record_id}: {e}",
                category=ErrorCategory.CLEANUP
            )
            return False
        logger.debug(f"Deleted configuration record {record_id}")
        return True
