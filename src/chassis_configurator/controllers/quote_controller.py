"""
Quote Controller

Loads and saves the quote being worked on, runs the periodic draft auto-save
and deletes durable rows of line items removed from the quote.

Only drafts are mutable. Submitted and approved quotes are never auto-saved.
"""

import asyncio
import logging
import uuid
from typing import Collection, List, Optional, Tuple

from PyQt6.QtCore import QObject, pyqtSignal

from ..communication.store_base import QuoteStore, StoreError
from ..models.bom import BOMLineItem, Quote
from ..models.enums import QuoteStatus
from ..utils.decorators import retry_async
from ..utils.error_handler import ErrorCategory, ErrorHandler, get_error_handler
from ..utils.settings import ConfiguratorSettings
from .bom_sync import BOMLineSynchronizer

logger = logging.getLogger(__name__)


class QuoteController(QObject):
    """
    Owns the current quote and its persistence.

    Signals:
        quote_loaded(object): Quote loaded or created
        quote_saved(str): Quote id after a successful save
        save_failed(str): Error message of a failed save
        line_items_changed(): Line-item list replaced
    """

    quote_loaded = pyqtSignal(object)
    quote_saved = pyqtSignal(str)
    save_failed = pyqtSignal(str)
    line_items_changed = pyqtSignal()

    def __init__(self, store: QuoteStore, settings: Optional[ConfiguratorSettings] = None,
                 synchronizer: Optional[BOMLineSynchronizer] = None,
                 error_handler: Optional[ErrorHandler] = None, parent: QObject = None):
        super().__init__(parent)
        self._store = store
        self._settings = settings or ConfiguratorSettings()
        self._error_handler = error_handler
        self._sync = synchronizer or BOMLineSynchronizer(store, error_handler)
        self._quote: Optional[Quote] = None
        self._saved_items: List[BOMLineItem] = []
        self._autosave_task: Optional[asyncio.Task] = None
        self._save_lock = asyncio.Lock()

    @property
    def error_handler(self) -> ErrorHandler:
        return self._error_handler or get_error_handler()

    @property
    def quote(self) -> Optional[Quote]:
        return self._quote

    @property
    def synchronizer(self) -> BOMLineSynchronizer:
        return self._sync

    @property
    def is_autosaving(self) -> bool:
        return self._autosave_task is not None and not self._autosave_task.done()

    # ========== Loading ==========

    def new_quote(self, quote_id: Optional[str] = None) -> Quote:
        """Start an empty draft"""
        self._quote = Quote(id=quote_id or f"Q-{uuid.uuid4().hex[:8]}")
        self._saved_items = []
        logger.info(f"Created new draft quote {self._quote.id}")
        self.quote_loaded.emit(self._quote)
        return self._quote

    async def load_quote(self, quote_id: str) -> Tuple[bool, Optional[str]]:
        """
        Load a quote and its line items.

        Line items of a freshly cloned quote may lag behind; they are re-read
        with a bounded exponential backoff until they appear.

        Returns:
            Tuple[bool, Optional[str]]: (success, error_message)
        """
        try:
            header = await self._store.load_quote(quote_id)
            if header.get("clonedFrom"):
                loader = retry_async(
                    attempts=self._settings.clone_load_attempts,
                    initial_delay=self._settings.clone_load_initial_delay,
                    backoff_multiplier=self._settings.clone_load_backoff,
                    retry_on=(StoreError,),
                    retry_if=lambda items: not items,
                )(self._store.load_line_items)
            else:
                loader = self._store.load_line_items
            items = await loader(quote_id)
        except StoreError as e:
            error_msg = f"Failed to load quote {quote_id}: {e}"
            self.error_handler.handle_exception(e, error_msg, ErrorCategory.PERSISTENCE)
            return False, error_msg

        try:
            quote = Quote.from_dict({**header, "lineItems": items})
        except (KeyError, ValueError) as e:
            error_msg = f"Quote {quote_id} contains invalid data: {e}"
            self.error_handler.handle_exception(e, error_msg, ErrorCategory.VALIDATION)
            return False, error_msg

        self._quote = quote
        self._saved_items = list(quote.line_items)
        logger.info(f"Loaded quote {quote_id} ({quote.status.value}) with {len(quote.line_items)} line items")
        self.quote_loaded.emit(quote)
        return True, None

    # ========== Saving ==========

    def _persistable_items(self) -> List[BOMLineItem]:
        return [item for item in self._quote.line_items if not item.is_placeholder]

    async def save_draft(self, protected: Collection[str] = ()) -> Tuple[bool, Optional[str]]:
        """
        Store the draft snapshot and delete rows of removed items.

        On failure the in-memory quote is kept unchanged.

        Returns:
            Tuple[bool, Optional[str]]: (success, error_message)
        """
        if self._quote is None:
            return False, "No quote loaded"
        if not self._quote.is_draft:
            return False, f"Quote {self._quote.id} is {self._quote.status.value} and cannot be changed"

        async with self._save_lock:
            items = self._persistable_items()
            try:
                await self._store.save_draft_snapshot(self._quote.id, [item.to_dict() for item in items])
            except StoreError as e:
                return self._save_error(f"Failed to save draft {self._quote.id}: {e}", e)

            await self._sync.sync_removed(self._quote.id, self._saved_items, items, protected)
            self._saved_items = list(items)

        logger.info(f"Saved draft {self._quote.id} ({len(items)} line items)")
        self.quote_saved.emit(self._quote.id)
        return True, None

    async def submit(self, protected: Collection[str] = ()) -> Tuple[bool, Optional[str]]:
        """
        Persist line items as durable rows and move the quote to approval.

        Returns:
            Tuple[bool, Optional[str]]: (success, error_message)
        """
        if self._quote is None:
            return False, "No quote loaded"
        if not self._quote.is_draft:
            return False, f"Quote {self._quote.id} is already {self._quote.status.value}"

        async with self._save_lock:
            items = self._persistable_items()
            try:
                ids = await self._store.save_line_items(self._quote.id, [item.to_dict() for item in items])
                for item, durable_id in zip(items, ids):
                    item.id = durable_id
                await self._sync.sync_removed(self._quote.id, self._saved_items, items, protected)
                await self._store.update_quote_status(self._quote.id, QuoteStatus.PENDING_APPROVAL.value)
            except StoreError as e:
                return self._save_error(f"Failed to submit quote {self._quote.id}: {e}", e)

            self._saved_items = list(items)
            self._quote.status = QuoteStatus.PENDING_APPROVAL

        self.stop_autosave()
        logger.info(f"Submitted quote {self._quote.id} for approval")
        self.quote_saved.emit(self._quote.id)
        return True, None

    def _save_error(self, error_msg: str, exception: Exception) -> Tuple[bool, str]:
        self.error_handler.handle_exception(exception, error_msg, ErrorCategory.PERSISTENCE)
        self.save_failed.emit(error_msg)
        return False, error_msg

    async def update_line_items(self, new_items: List[BOMLineItem],
                                protected: Collection[str] = ()) -> List[BOMLineItem]:
        """
        Replace the line-item list and delete durable rows of removed items.

        Returns:
            Removed line items
        """
        if self._quote is None:
            raise ValueError("No quote loaded")
        if not self._quote.is_draft:
            raise ValueError(f"Quote {self._quote.id} is {self._quote.status.value} and cannot be changed")

        old_items = list(self._quote.line_items)
        removed = self._sync.detect_removed(old_items, new_items)
        self._quote.line_items = list(new_items)
        self.line_items_changed.emit()

        if removed:
            await self._sync.sync_removed(self._quote.id, old_items, new_items, protected)
            removed_keys = {item.identity_key for item in removed}
            self._saved_items = [item for item in self._saved_items if item.identity_key not in removed_keys]
        return removed

    # ========== Auto-save ==========

    def should_autosave(self) -> bool:
        """Only drafts with at least one line item are auto-saved"""
        return (
            self._quote is not None
            and self._quote.is_draft
            and bool(self._persistable_items())
        )

    async def autosave_tick(self) -> bool:
        """
        Run one auto-save cycle.

        Returns:
            True if a save was attempted and succeeded
        """
        if not self.should_autosave():
            return False
        success, error_msg = await self.save_draft()
        if not success:
            logger.warning(f"Auto-save failed: {error_msg}")
        return success

    def start_autosave(self) -> None:
        """Start the periodic auto-save task (requires a running event loop)"""
        if self.is_autosaving:
            return
        self._autosave_task = asyncio.create_task(self._autosave_loop())
        logger.debug(f"Auto-save started (every {self._settings.autosave_interval}s)")

    def stop_autosave(self) -> None:
        if self._autosave_task is not None:
            self._autosave_task.cancel()
            self._autosave_task = None
            logger.debug("Auto-save stopped")

    async def _autosave_loop(self) -> None:
        """Background task for periodic draft saves."""
        while True:
            await asyncio.sleep(self._settings.autosave_interval)
            await self.autosave_tick()
