"""
Pytest configuration shared by unit and integration tests.

Provides a small two-chassis catalog:
- ``mtx``: 7-slot chassis with the default single-row layout
- ``ltx``: 14-slot chassis (controller at 0, display reserved at 8)
"""

import copy
import sys
from pathlib import Path

import pytest
from PyQt6.QtCore import QCoreApplication

sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from chassis_configurator.communication.memory_store import InMemoryStore
from chassis_configurator.models.catalog import (
    CardDefinition,
    Chassis,
    ChassisCatalog,
    PartNumberConfig,
    code_map_from_dict,
)
from chassis_configurator.models.session import ConfigurationSession
from chassis_configurator.utils.error_handler import (
    ErrorHandler,
    reset_error_handler,
    set_error_handler,
)


CHASSIS = [
    {
        "id": "mtx",
        "name": "QTMS MTX Chassis",
        "level": 2,
        "typeCode": "MTX",
        "totalSlots": 7,
        "price": 1000.0,
        "cost": 600.0,
        "partNumber": "QTMS-MTX",
        "specifications": {"slots": 7, "height": "3U"},
    },
    {
        "product_id": "ltx",
        "displayName": "QTMS LTX Chassis",
        "level": 2,
        "chassisType": "ltx",
        "price": 2000.0,
        "cost": 1200.0,
        "partNumber": "QTMS-LTX",
        "specifications": {"slots": 14, "height": "6U"},
    },
]

CARDS = [
    {"id": "relay-8", "name": "Relay 8", "categoryCode": "relay", "compatibleChassisTypes": ["MTX", "LTX"],
     "price": 100.0, "cost": 50.0, "partNumber": "RLY-8", "specifications": {"inputs": 8}},
    {"id": "analog-4", "name": "Analog 4", "categoryCode": "analog", "compatibleChassisTypes": ["mtx", "ltx"],
     "price": 150.0, "cost": 80.0, "partNumber": "ANA-4", "specifications": {"inputs": 4}},
    {"id": "fiber-dual", "name": "Fiber Dual", "categoryCode": "fiber", "compatibleChassisTypes": ["MTX", "LTX"],
     "price": 300.0, "cost": 150.0, "partNumber": "FIB-2", "slotSpan": 2},
    {"id": "display", "name": "Display", "categoryCode": "display", "compatibleChassisTypes": ["MTX", "LTX"],
     "price": 250.0, "cost": 120.0, "partNumber": "DSP-1"},
    {"id": "bushing", "name": "Bushing Monitor", "categoryCode": "bushing", "compatibleChassisTypes": ["MTX", "LTX"],
     "price": 400.0, "cost": 200.0, "partNumber": "BSH-1", "requiresSubConfig": True},
    {"id": "digital-16", "name": "Digital 16", "card_type": "digital", "compatible_chassis": ["LTX", "MTX"],
     "price": 120.0, "cost": 60.0, "partNumber": "DIG-16", "requires_level4_config": True,
     "specifications": {"inputs": 16}},
    {"id": "stx-relay", "name": "STX Relay", "categoryCode": "relay", "compatibleChassisTypes": ["STX"],
     "price": 90.0, "cost": 40.0, "partNumber": "RLY-S"},
    {"id": "cpu", "name": "Controller", "categoryCode": "other", "compatibleChassisTypes": ["MTX", "LTX"],
     "price": 0.0, "cost": 0.0, "partNumber": "CPU-1"},
    {"id": "remote-panel", "name": "Remote Panel", "categoryCode": "other",
     "compatibleChassisTypes": ["MTX", "LTX"], "price": 500.0, "cost": 300.0, "partNumber": "RP-1",
     "specifications": {"inputs": 2}},
    {"id": "power-cord", "name": "Power Cord", "categoryCode": "other", "compatibleChassisTypes": ["MTX", "LTX"],
     "price": 20.0, "cost": 5.0, "partNumber": "PWR-1"},
]

CODE_MAP = {
    "relay-8": {"template": "R"},
    "analog-4": {"template": "A{inputs}"},
    "fiber-dual": {"template": "F", "slot_span": 2},
    "display": {"template": "D"},
    "bushing": {"template": "B{numberOfBushings}"},
    "digital-16": {"template": "G{inputs}{revision}"},
    "cpu": {"template": "C", "is_standard": True, "standard_position": 0},
    "remote-panel": {"template": "RP-{inputs}", "outside_chassis": True},
    "power-cord": {"template": "PC{length}", "outside_chassis": True, "is_standard": True},
}

PN_CONFIGS = {
    "mtx": {"prefix": "QTMS-MTX-", "slot_placeholder": "0", "slot_count": 7,
            "suffix_separator": "-", "remote_on_code": "D1", "remote_off_code": "0"},
    "ltx": {"prefix": "QTMS-LTX-", "slot_placeholder": "0", "slot_count": 14,
            "suffix_separator": "-", "remote_on_code": "D1", "remote_off_code": "0"},
}


def build_catalog(chassis_id: str, code_map=None, pn_config="default") -> ChassisCatalog:
    """Build a catalog bundle synchronously from the fixture data."""
    record = next(r for r in CHASSIS if (r.get("id") or r.get("product_id")) == chassis_id)
    chassis = Chassis.from_dict(record)
    cards = {}
    for card_record in CARDS:
        card = CardDefinition.from_dict(card_record)
        cards[card.id] = card
    if pn_config == "default":
        pn_config = PN_CONFIGS[chassis_id]
    return ChassisCatalog(
        chassis=chassis,
        cards=cards,
        code_map=code_map_from_dict(CODE_MAP if code_map is None else code_map),
        pn_config=PartNumberConfig.from_dict(pn_config),
    )


# ============================================================================
# Fixtures
# ============================================================================

@pytest.fixture(scope="session", autouse=True)
def qt_core_app():
    """Qt application instance for QObject-based classes."""
    app = QCoreApplication.instance() or QCoreApplication([])
    yield app


@pytest.fixture
def error_handler():
    """Fresh global ErrorHandler for each test."""
    handler = ErrorHandler()
    set_error_handler(handler)
    yield handler
    reset_error_handler()


@pytest.fixture
def catalog_data():
    """Raw catalog dictionary in the store file format."""
    return copy.deepcopy({
        "chassis": CHASSIS,
        "cards": CARDS,
        "codeMaps": {"mtx": CODE_MAP, "ltx": CODE_MAP},
        "partNumberConfigs": PN_CONFIGS,
    })


@pytest.fixture
def store(catalog_data):
    """In-memory store seeded with the fixture catalog and an empty draft."""
    store = InMemoryStore.from_dict(catalog_data)
    store.add_quote("Q-1", "draft")
    return store


@pytest.fixture
def mtx_catalog():
    return build_catalog("mtx")


@pytest.fixture
def ltx_catalog():
    return build_catalog("ltx")


@pytest.fixture
def mtx_session(mtx_catalog):
    return ConfigurationSession(catalog=mtx_catalog)


@pytest.fixture
def ltx_session(ltx_catalog):
    return ConfigurationSession(catalog=ltx_catalog)
