"""
Unit Tests: BOM Models

Tests for models/bom.py - line items and quotes.
"""

import pytest

from chassis_configurator.models.bom import (
    BOMLineItem,
    LineItemConfiguration,
    PartNumberContext,
    Quote,
)
from chassis_configurator.models.catalog import Chassis, CardDefinition
from chassis_configurator.models.enums import QuoteStatus
from chassis_configurator.models.slots import CardInstance, SlotAssignment


@pytest.fixture
def chassis_line(mtx_catalog):
    assignments = SlotAssignment({3: CardInstance.from_card(mtx_catalog.card("relay-8"))})
    return BOMLineItem(
        product=mtx_catalog.chassis,
        id="line-1",
        unit_price=1100.0,
        unit_cost=650.0,
        part_number="QTMS-MTX-00R0000-D1",
        slot_assignments=assignments,
        rack_layout=assignments.to_rack_layout(),
        configuration=LineItemConfiguration(has_remote_display=True, bushing_counts={"slot-6": 3}),
        part_number_context=PartNumberContext(mtx_catalog.pn_config, mtx_catalog.code_map),
    )


def accessory(catalog, card_id, line_id, parent="line-1"):
    card = catalog.card(card_id)
    return BOMLineItem(product=card, id=line_id, unit_price=card.price, is_accessory=True, parent_line_id=parent)


class TestBOMLineItem:
    """Tests for BOMLineItem."""

    def test_round_trip(self, chassis_line):
        restored = BOMLineItem.from_dict(chassis_line.to_dict())
        assert isinstance(restored.product, Chassis)
        assert restored.part_number == chassis_line.part_number
        assert restored.slot_assignments.signatures() == chassis_line.slot_assignments.signatures()
        assert restored.configuration == chassis_line.configuration
        assert restored.part_number_context.pn_config == chassis_line.part_number_context.pn_config
        assert restored.part_number_context.code_map == chassis_line.part_number_context.code_map

    def test_missing_product_rejected(self):
        with pytest.raises(ValueError):
            BOMLineItem.from_dict({"id": "x"})

    def test_is_chassis(self, chassis_line, mtx_catalog):
        assert chassis_line.is_chassis
        empty = BOMLineItem(product=mtx_catalog.chassis)
        assert empty.is_chassis
        assert not accessory(mtx_catalog, "power-cord", "a1").is_chassis

    def test_identity_key(self, mtx_catalog):
        item = BOMLineItem(product=mtx_catalog.card("power-cord"), part_number="PC")
        assert not item.has_durable_id
        assert item.identity_key == "power-cord::PC"
        item.id = "row-7"
        assert item.identity_key == "row-7"

    def test_totals(self, mtx_catalog):
        item = BOMLineItem(product=mtx_catalog.card("relay-8"), quantity=3, unit_price=100.0, unit_cost=50.0)
        assert item.total_price == 300.0
        assert item.total_cost == 150.0

    def test_card_product_round_trip(self, mtx_catalog):
        item = accessory(mtx_catalog, "remote-panel", "a1")
        restored = BOMLineItem.from_dict(item.to_dict())
        assert isinstance(restored.product, CardDefinition)
        assert restored.is_accessory
        assert restored.parent_line_id == "line-1"


class TestQuote:
    """Tests for Quote."""

    @pytest.fixture
    def quote(self, chassis_line, mtx_catalog):
        other = BOMLineItem(product=mtx_catalog.chassis, id="line-2")
        return Quote(id="Q-1", line_items=[
            chassis_line,
            accessory(mtx_catalog, "remote-panel", "a1"),
            accessory(mtx_catalog, "power-cord", "a2"),
            other,
            accessory(mtx_catalog, "power-cord", "a3", parent="line-2"),
        ])

    def test_accessory_run(self, quote):
        assert [item.id for item in quote.accessory_run("line-1")] == ["a1", "a2"]
        assert [item.id for item in quote.accessory_run("line-2")] == ["a3"]
        assert quote.accessory_run("missing") == []

    def test_index_and_get(self, quote):
        assert quote.index_of("line-2") == 3
        assert quote.index_of("nope") == -1
        assert quote.get_line("a1").is_accessory

    def test_billable_items_skip_placeholders(self, quote, mtx_catalog):
        quote.line_items.append(BOMLineItem(product=mtx_catalog.card("digital-16"), id="p", is_placeholder=True))
        assert "p" not in [item.id for item in quote.billable_items()]

    def test_round_trip(self, quote):
        quote.status = QuoteStatus.PENDING_APPROVAL
        restored = Quote.from_dict(quote.to_dict())
        assert restored.status == QuoteStatus.PENDING_APPROVAL
        assert not restored.is_draft
        assert [item.id for item in restored.line_items] == [item.id for item in quote.line_items]
