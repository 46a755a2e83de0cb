"""
Controllers Package

Contains the configuration engine and quote orchestration.
"""

from .catalog_adapter import CatalogAdapter
from .slot_engine import SlotAssignmentEngine, PlacementResult
from .config_links import ConfigLinkManager
from .bom_sync import BOMLineSynchronizer, derive_part_number
from .quote_controller import QuoteController
from .configurator import ChassisConfigurator

__all__ = [
    'CatalogAdapter',
    'SlotAssignmentEngine',
    'PlacementResult',
    'ConfigLinkManager',
    'BOMLineSynchronizer',
    'derive_part_number',
    'QuoteController',
    'ChassisConfigurator',
]
