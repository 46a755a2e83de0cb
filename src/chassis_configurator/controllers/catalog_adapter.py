"""
Catalog Adapter

Read-only accessor that fetches chassis, card, code-map and part-number
config records from the store and bundles them into a ``ChassisCatalog``.
Bundles are cached per chassis.
"""

import asyncio
import logging
from typing import Dict, Optional

from ..communication.store_base import QuoteStore
from ..models.catalog import (
    CardDefinition,
    Chassis,
    ChassisCatalog,
    PartNumberConfig,
    code_map_from_dict,
)

logger = logging.getLogger(__name__)


class CatalogAdapter:
    """Loads and caches per-chassis catalog bundles"""

    def __init__(self, store: QuoteStore):
        self._store = store
        self._cache: Dict[str, ChassisCatalog] = {}

    async def load(self, chassis_id: str, refresh: bool = False) -> ChassisCatalog:
        """
        Load the catalog bundle for a chassis.

        Args:
            chassis_id: Chassis to load
            refresh: Bypass the cache

        Raises:
            StoreError: The store could not provide the chassis
        """
        if not refresh and chassis_id in self._cache:
            return self._cache[chassis_id]

        chassis_record, card_records, code_map_data, pn_data = await asyncio.gather(
            self._store.get_chassis(chassis_id),
            self._store.get_cards_for_chassis(chassis_id),
            self._store.get_code_map(chassis_id),
            self._store.get_part_number_config(chassis_id),
        )

        chassis = Chassis.from_dict(chassis_record)
        cards: Dict[str, CardDefinition] = {}
        for record in card_records:
            try:
                card = CardDefinition.from_dict(record)
            except ValueError as e:
                logger.warning(f"Skipping card record for chassis '{chassis_id}': {e}")
                continue
            cards[card.id] = card

        code_map = code_map_from_dict(code_map_data)
        for card_id in code_map:
            if card_id not in cards:
                logger.debug(f"Code map entry '{card_id}' has no matching card for chassis '{chassis_id}'")

        pn_config = PartNumberConfig.from_dict(pn_data)
        if pn_config is None:
            logger.info(f"Chassis '{chassis_id}' has no part number configuration")

        catalog = ChassisCatalog(chassis=chassis, cards=cards, code_map=code_map, pn_config=pn_config)
        self._cache[chassis_id] = catalog
        logger.info(f"Loaded catalog for chassis '{chassis_id}': {len(cards)} cards, {len(code_map)} code map entries")
        return catalog

    def invalidate(self, chassis_id: Optional[str] = None) -> None:
        """Drop one cached bundle, or all of them"""
        if chassis_id is None:
            self._cache.clear()
        else:
            self._cache.pop(chassis_id, None)
