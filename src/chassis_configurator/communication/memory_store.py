"""
In-Memory Quote Store

Dict-backed implementation of the store contract used by the CLI and tests.
Supports failure injection and simulates the read lag of a freshly cloned
quote, whose line items only become visible after a few reads.

Catalog file format:
    {
        "chassis": [ {chassis record}, ... ],
        "cards": [ {card record}, ... ],
        "codeMaps": { "<chassis id>": { "<card id>": {entry}, ... } },
        "partNumberConfigs": { "<chassis id>": {config} },
        "quotes": [ {"id": ..., "status": ..., "lineItems": [...]} ]
    }
"""

import asyncio
import copy
import json
import logging
import uuid
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple, Union

from ..models.catalog import normalize_record
from .store_base import QuoteStore, StoreError, RecordNotFoundError

logger = logging.getLogger(__name__)


class InMemoryStore(QuoteStore):
    """
    Store implementation holding everything in dictionaries.

    Usage:
        store = InMemoryStore.from_json_file("catalog.json")
        chassis = await store.get_chassis("ltx")

        # Make the next save fail
        store.fail_next("save_draft_snapshot", "network down")
    """

    def __init__(self, latency: float = 0.0):
        self._latency = latency
        self._chassis: Dict[str, Dict[str, Any]] = {}
        self._cards: List[Dict[str, Any]] = []
        self._code_maps: Dict[str, Dict[str, Dict[str, Any]]] = {}
        self._pn_configs: Dict[str, Dict[str, Any]] = {}
        self._level4_records: Dict[str, Dict[str, Any]] = {}
        self._quotes: Dict[str, Dict[str, Any]] = {}
        self._line_items: Dict[str, List[Dict[str, Any]]] = {}
        self._drafts: Dict[str, List[Dict[str, Any]]] = {}
        self._pending_lag: Dict[str, int] = {}
        self._failures: Dict[str, List[str]] = {}
        self.calls: List[Tuple[str, tuple]] = []

    # ========== Loading ==========

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "InMemoryStore":
        """Create a store seeded from a catalog dictionary"""
        store = cls()
        for record in data.get("chassis", []):
            store.add_chassis(record)
        for record in data.get("cards", []):
            store.add_card(record)
        for chassis_id, code_map in (data.get("codeMaps") or {}).items():
            store.set_code_map(chassis_id, code_map)
        for chassis_id, config in (data.get("partNumberConfigs") or {}).items():
            store.set_part_number_config(chassis_id, config)
        for quote in data.get("quotes", []):
            store.add_quote(quote["id"], quote.get("status", "draft"),
                            quote.get("lineItems"), quote.get("clonedFrom"))
        logger.info(
            f"Loaded catalog: {len(store._chassis)} chassis, {len(store._cards)} cards, "
            f"{len(store._quotes)} quotes"
        )
        return store

    @classmethod
    def from_json_file(cls, filepath: Union[str, Path]) -> "InMemoryStore":
        """
        Create a store from a JSON catalog file.

        Raises:
            StoreError: File missing or not valid JSON
        """
        path = Path(filepath)
        if not path.exists():
            raise StoreError(f"Catalog file not found: {filepath}")
        try:
            with open(path, 'r', encoding='utf-8') as f:
                data = json.load(f)
        except json.JSONDecodeError as e:
            raise StoreError(f"Invalid JSON in catalog file (line {e.lineno}, column {e.colno}): {e.msg}") from e
        return cls.from_dict(data)

    def add_chassis(self, record: Dict[str, Any]) -> None:
        chassis_id = normalize_record(record)["id"]
        self._chassis[chassis_id] = copy.deepcopy(record)

    def add_card(self, record: Dict[str, Any]) -> None:
        self._cards.append(copy.deepcopy(record))

    def remove_card(self, card_id: str) -> None:
        """Withdraw a card from the catalog"""
        self._cards = [card for card in self._cards if normalize_record(card).get("id") != card_id]

    def set_code_map(self, chassis_id: str, code_map: Dict[str, Dict[str, Any]]) -> None:
        self._code_maps[chassis_id] = copy.deepcopy(code_map)

    def set_part_number_config(self, chassis_id: str, config: Optional[Dict[str, Any]]) -> None:
        if config is None:
            self._pn_configs.pop(chassis_id, None)
        else:
            self._pn_configs[chassis_id] = copy.deepcopy(config)

    def add_quote(self, quote_id: str, status: str = "draft",
                  line_items: Optional[List[Dict[str, Any]]] = None,
                  cloned_from: Optional[str] = None) -> None:
        self._quotes[quote_id] = {"id": quote_id, "status": status, "clonedFrom": cloned_from}
        self._line_items[quote_id] = copy.deepcopy(line_items or [])

    def clone_quote(self, source_id: str, new_id: Optional[str] = None, lag_reads: int = 0) -> str:
        """
        Clone a quote as a new draft.

        Args:
            source_id: Quote to clone
            new_id: Id of the clone (generated when omitted)
            lag_reads: Number of line-item reads that return nothing yet

        Returns:
            Id of the new quote
        """
        if source_id not in self._quotes:
            raise RecordNotFoundError(f"Quote not found: {source_id}")
        new_id = new_id or f"Q-{uuid.uuid4().hex[:8]}"
        items = copy.deepcopy(self._line_items.get(source_id, []))
        for item in items:
            item["id"] = str(uuid.uuid4())
        self.add_quote(new_id, "draft", items, cloned_from=source_id)
        if lag_reads:
            self._pending_lag[new_id] = lag_reads
        logger.info(f"Cloned quote {source_id} -> {new_id}")
        return new_id

    # ========== Test hooks ==========

    def fail_next(self, method: str, message: str = "Simulated store failure") -> None:
        """Make the next call of ``method`` raise StoreError"""
        self._failures.setdefault(method, []).append(message)

    def calls_to(self, method: str) -> List[tuple]:
        return [args for name, args in self.calls if name == method]

    def level4_record(self, record_id: str) -> Optional[Dict[str, Any]]:
        return copy.deepcopy(self._level4_records.get(record_id))

    def draft_snapshot(self, quote_id: str) -> Optional[List[Dict[str, Any]]]:
        snapshot = self._drafts.get(quote_id)
        return copy.deepcopy(snapshot) if snapshot is not None else None

    def quote_status(self, quote_id: str) -> Optional[str]:
        quote = self._quotes.get(quote_id)
        return quote["status"] if quote else None

    async def _enter(self, method: str, *args) -> None:
        self.calls.append((method, args))
        if self._latency:
            await asyncio.sleep(self._latency)
        pending = self._failures.get(method)
        if pending:
            message = pending.pop(0)
            logger.debug(f"Injected failure for {method}: {message}")
            raise StoreError(message)

    def _require_quote(self, quote_id: str) -> Dict[str, Any]:
        quote = self._quotes.get(quote_id)
        if quote is None:
            raise RecordNotFoundError(f"Quote not found: {quote_id}")
        return quote

    # ========== Catalog ==========

    async def get_chassis(self, chassis_id: str) -> Dict[str, Any]:
        await self._enter("get_chassis", chassis_id)
        record = self._chassis.get(chassis_id)
        if record is None:
            raise RecordNotFoundError(f"Chassis not found: {chassis_id}")
        return copy.deepcopy(record)

    async def get_cards_for_chassis(self, chassis_id: str) -> List[Dict[str, Any]]:
        """Cards compatible with the chassis type plus any card its code map names"""
        await self._enter("get_cards_for_chassis", chassis_id)
        record = self._chassis.get(chassis_id)
        if record is None:
            raise RecordNotFoundError(f"Chassis not found: {chassis_id}")
        chassis_type = str(normalize_record(record)["type_code"] or "").lower()
        mapped = set(self._code_maps.get(chassis_id, {}))
        result = []
        for card in self._cards:
            normalized = normalize_record(card)
            types = [str(t).lower() for t in normalized["compatible_chassis_types"] or []]
            if chassis_type in types or normalized["id"] in mapped:
                result.append(copy.deepcopy(card))
        return result

    async def get_code_map(self, chassis_id: str) -> Dict[str, Dict[str, Any]]:
        await self._enter("get_code_map", chassis_id)
        return copy.deepcopy(self._code_maps.get(chassis_id, {}))

    async def get_part_number_config(self, chassis_id: str) -> Optional[Dict[str, Any]]:
        await self._enter("get_part_number_config", chassis_id)
        config = self._pn_configs.get(chassis_id)
        return copy.deepcopy(config) if config is not None else None

    # ========== Sub-configuration records ==========

    async def create_level4_placeholder(self, quote_id: str, product_id: str, slot: int) -> str:
        await self._enter("create_level4_placeholder", quote_id, product_id, slot)
        record_id = f"L4-{uuid.uuid4().hex[:12]}"
        self._level4_records[record_id] = {
            "id": record_id,
            "quoteId": quote_id,
            "productId": product_id,
            "slot": slot,
            "payload": None,
        }
        return record_id

    async def save_level4_config(self, record_id: str, payload: Dict[str, Any]) -> None:
        await self._enter("save_level4_config", record_id)
        record = self._level4_records.get(record_id)
        if record is None:
            raise RecordNotFoundError(f"Sub-configuration record not found: {record_id}")
        record["payload"] = copy.deepcopy(payload)

    async def delete_level4_record(self, record_id: str, force: bool = False) -> None:
        await self._enter("delete_level4_record", record_id, force)
        record = self._level4_records.get(record_id)
        if record is None:
            raise RecordNotFoundError(f"Sub-configuration record not found: {record_id}")
        if record["payload"] is not None and not force:
            raise StoreError(f"Sub-configuration record {record_id} has saved values")
        del self._level4_records[record_id]

    # ========== Quotes ==========

    async def load_quote(self, quote_id: str) -> Dict[str, Any]:
        await self._enter("load_quote", quote_id)
        return dict(self._require_quote(quote_id))

    async def load_line_items(self, quote_id: str) -> List[Dict[str, Any]]:
        """Draft snapshot for drafts that have one, durable rows otherwise"""
        await self._enter("load_line_items", quote_id)
        quote = self._require_quote(quote_id)
        lag = self._pending_lag.get(quote_id, 0)
        if lag:
            self._pending_lag[quote_id] = lag - 1
            return []
        if quote["status"] == "draft" and quote_id in self._drafts:
            return copy.deepcopy(self._drafts[quote_id])
        return copy.deepcopy(self._line_items.get(quote_id, []))

    async def save_draft_snapshot(self, quote_id: str, items: List[Dict[str, Any]]) -> None:
        await self._enter("save_draft_snapshot", quote_id, len(items))
        quote = self._require_quote(quote_id)
        if quote["status"] != "draft":
            raise StoreError(f"Quote {quote_id} is not a draft")
        self._drafts[quote_id] = copy.deepcopy(items)

    async def save_line_items(self, quote_id: str, items: List[Dict[str, Any]]) -> List[str]:
        """Upsert rows by id; rows not mentioned are kept"""
        await self._enter("save_line_items", quote_id, len(items))
        self._require_quote(quote_id)
        rows = self._line_items.setdefault(quote_id, [])
        index = {row.get("id"): i for i, row in enumerate(rows)}
        ids = []
        for item in items:
            row = copy.deepcopy(item)
            if not row.get("id"):
                row["id"] = str(uuid.uuid4())
            if row["id"] in index:
                rows[index[row["id"]]] = row
            else:
                index[row["id"]] = len(rows)
                rows.append(row)
            ids.append(row["id"])
        return ids

    async def delete_line_items(self, quote_id: str, item_ids: List[str]) -> None:
        await self._enter("delete_line_items", quote_id, tuple(item_ids))
        self._require_quote(quote_id)
        doomed = set(item_ids)
        self._line_items[quote_id] = [
            row for row in self._line_items.get(quote_id, []) if row.get("id") not in doomed
        ]
        if quote_id in self._drafts:
            self._drafts[quote_id] = [
                row for row in self._drafts[quote_id] if row.get("id") not in doomed
            ]

    async def update_quote_status(self, quote_id: str, status: str) -> None:
        await self._enter("update_quote_status", quote_id, status)
        self._require_quote(quote_id)["status"] = status
