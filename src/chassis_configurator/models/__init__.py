"""
Models Package

Contains data models for the chassis configurator.
"""

from .enums import ProductLevel, CardCategory, QuoteStatus, PlacementError, LinkState
from .catalog import (
    ProductBase,
    Level1Product,
    Chassis,
    CardDefinition,
    CodeMapEntry,
    CodeMap,
    PartNumberConfig,
    ChassisCatalog,
    normalize_record,
    product_from_dict,
    code_map_from_dict,
    code_map_to_dict,
    generate_default_layout,
)
from .slots import CardInstance, SlotAssignment, slot_key
from .part_number import build_part_number, accessory_part_number, strip_placeholders
from .bom import BOMLineItem, LineItemConfiguration, PartNumberContext, Quote
from .session import ConfigurationSession, ConfigLink, EditBaseline

__all__ = [
    'ProductLevel',
    'CardCategory',
    'QuoteStatus',
    'PlacementError',
    'LinkState',
    'ProductBase',
    'Level1Product',
    'Chassis',
    'CardDefinition',
    'CodeMapEntry',
    'CodeMap',
    'PartNumberConfig',
    'ChassisCatalog',
    'normalize_record',
    'product_from_dict',
    'code_map_from_dict',
    'code_map_to_dict',
    'generate_default_layout',
    'CardInstance',
    'SlotAssignment',
    'slot_key',
    'build_part_number',
    'accessory_part_number',
    'strip_placeholders',
    'BOMLineItem',
    'LineItemConfiguration',
    'PartNumberContext',
    'Quote',
    'ConfigurationSession',
    'ConfigLink',
    'EditBaseline',
]
