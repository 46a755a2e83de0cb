"""
Quote Store Base Interface

This module defines the abstract base class for the persistence collaborator.
The store owns the catalog, admin rules, sub-configuration records and quote
line items; the configurator only talks to it through this async interface.
"""

from abc import ABC, abstractmethod
from typing import Any, Dict, List, Optional


class StoreError(Exception):
    """Base exception for store errors."""
    pass


class RecordNotFoundError(StoreError):
    """Requested record does not exist."""
    pass


class QuoteStore(ABC):
    """
    Abstract base class for store implementations.

    Records cross this boundary as plain dicts. Failures are raised as
    StoreError subclasses.
    """

    # ========== Catalog (read-only) ==========

    @abstractmethod
    async def get_chassis(self, chassis_id: str) -> Dict[str, Any]:
        """
        Fetch a chassis record.

        Raises:
            RecordNotFoundError: Unknown chassis id
        """
        pass

    @abstractmethod
    async def get_cards_for_chassis(self, chassis_id: str) -> List[Dict[str, Any]]:
        """Fetch the card records offered for a chassis"""
        pass

    @abstractmethod
    async def get_code_map(self, chassis_id: str) -> Dict[str, Dict[str, Any]]:
        """Fetch the admin code map (card id -> entry) for a chassis"""
        pass

    @abstractmethod
    async def get_part_number_config(self, chassis_id: str) -> Optional[Dict[str, Any]]:
        """Fetch the admin part number format, None when not configured"""
        pass

    # ========== Sub-configuration records ==========

    @abstractmethod
    async def create_level4_placeholder(self, quote_id: str, product_id: str, slot: int) -> str:
        """
        Create an empty sub-configuration record.

        Returns:
            Durable record id
        """
        pass

    @abstractmethod
    async def save_level4_config(self, record_id: str, payload: Dict[str, Any]) -> None:
        """Attach a sub-configuration payload to a record"""
        pass

    @abstractmethod
    async def delete_level4_record(self, record_id: str, force: bool = False) -> None:
        """Delete a sub-configuration record"""
        pass

    # ========== Quotes ==========

    @abstractmethod
    async def load_quote(self, quote_id: str) -> Dict[str, Any]:
        """Fetch a quote header (id, status, clonedFrom)"""
        pass

    @abstractmethod
    async def load_line_items(self, quote_id: str) -> List[Dict[str, Any]]:
        """Fetch the stored line items of a quote in order"""
        pass

    @abstractmethod
    async def save_draft_snapshot(self, quote_id: str, items: List[Dict[str, Any]]) -> None:
        """Store the draft line-item snapshot of a quote"""
        pass

    @abstractmethod
    async def save_line_items(self, quote_id: str, items: List[Dict[str, Any]]) -> List[str]:
        """
        Persist line items as durable rows.

        Returns:
            Durable ids in item order (new ids for items without one)
        """
        pass

    @abstractmethod
    async def delete_line_items(self, quote_id: str, item_ids: List[str]) -> None:
        """Delete durable line-item rows"""
        pass

    @abstractmethod
    async def update_quote_status(self, quote_id: str, status: str) -> None:
        """Change the lifecycle status of a quote"""
        pass
