"""
Unit Tests: Slot Models

Tests for models/slots.py - card instances and the slot map.
"""

import pytest

from chassis_configurator.models.slots import CardInstance, SlotAssignment, slot_key


@pytest.fixture
def relay(mtx_catalog):
    return CardInstance.from_card(mtx_catalog.card("relay-8"))


@pytest.fixture
def bushing_pair(mtx_catalog):
    card = mtx_catalog.card("bushing")
    primary = CardInstance.from_card(card, span=2, is_bushing_primary=True, bushing_pair_slot=5)
    secondary = CardInstance.from_card(card, span=1, is_bushing_secondary=True, bushing_pair_slot=4)
    return primary, secondary


class TestCardInstance:
    """Tests for CardInstance."""

    def test_from_card_copies_fields(self, mtx_catalog):
        card = mtx_catalog.card("analog-4")
        instance = CardInstance.from_card(card)
        assert instance.id == card.id
        assert instance.specifications == card.specifications
        instance.specifications["inputs"] = 99
        assert card.specifications["inputs"] == 4

    def test_signature(self, relay):
        assert relay.signature == "relay-8::RLY-8"

    def test_counts_toward_price(self, bushing_pair):
        primary, secondary = bushing_pair
        assert primary.counts_toward_price
        assert not secondary.counts_toward_price
        primary.is_shared_level4_config = True
        assert not primary.counts_toward_price

    def test_slot_key(self):
        assert slot_key(6) == "slot-6"


class TestSlotAssignmentOccupancy:
    """Tests for occupancy helpers."""

    def test_multi_slot_card_covers_span(self, mtx_catalog):
        fiber = CardInstance.from_card(mtx_catalog.card("fiber-dual"), span=2)
        assignments = SlotAssignment({3: fiber})
        assert assignments.covered_slots(3) == [3, 4]
        assert assignments.occupied_slots() == {3, 4}
        assert assignments.owner_of(4) == 3
        assert assignments.owner_of(5) is None

    def test_bushing_slots_cover_themselves(self, bushing_pair):
        primary, secondary = bushing_pair
        assignments = SlotAssignment({4: primary, 5: secondary})
        assert assignments.covered_slots(4) == [4]
        assert assignments.occupied_slots() == {4, 5}
        assert assignments.bushing_pairs() == [(4, 5)]

    def test_iteration_is_sorted(self, relay):
        assignments = SlotAssignment()
        assignments[5] = relay
        assignments[2] = relay
        assert list(assignments) == [2, 5]
        assert [slot for slot, _ in assignments.items()] == [2, 5]

    def test_copy_is_deep(self, relay):
        assignments = SlotAssignment({1: relay})
        clone = assignments.copy()
        clone[1].level4_config_id = "L4-1"
        assert assignments[1].level4_config_id is None
        assert clone != assignments


class TestSlotAssignmentSerialization:
    """Tests for snapshot and rack layout serialisation."""

    def test_snapshot_round_trip(self, relay, bushing_pair):
        primary, secondary = bushing_pair
        primary.level4_config_id = "L4-9"
        primary.level4_config = {"channels": [1, 2, 3]}
        assignments = SlotAssignment({2: relay, 4: primary, 5: secondary})

        restored = SlotAssignment.from_list(assignments.to_list())

        assert restored.signatures() == assignments.signatures()
        assert restored[4].is_bushing_primary
        assert restored[5].bushing_pair_slot == 4
        assert restored[4].level4_config == {"channels": [1, 2, 3]}
        assert restored[2].price == relay.price

    def test_empty_snapshot_is_none(self):
        assert SlotAssignment.from_list([]) is None
        assert SlotAssignment.from_list(None) is None

    def test_entry_without_slot_skipped(self):
        restored = SlotAssignment.from_list([{"productId": "x"}, {"slot": 1, "productId": "y"}])
        assert list(restored) == [1]

    def test_placeholder_id_for_missing_product(self):
        restored = SlotAssignment.from_list([{"slot": 3}])
        assert restored[3].id == "slot-3"
        assert restored[3].name == "Slot 3 Card"

    def test_rack_layout_round_trip(self, relay, bushing_pair):
        primary, secondary = bushing_pair
        assignments = SlotAssignment({2: relay, 4: primary, 5: secondary})
        layout = assignments.to_rack_layout()

        assert layout["slots"][2]["sharedFromSlot"] == 4
        assert layout["slots"][1]["span"] == 2

        restored = SlotAssignment.from_rack_layout(layout)
        assert restored.signatures() == assignments.signatures()
        assert restored[5].is_bushing_secondary
        assert restored[5].bushing_pair_slot == 4
        assert restored.occupied_slots() == {2, 4, 5}

    def test_rack_layout_secondary_without_pair_field(self):
        layout = {"slots": [
            {"slot": 6, "productId": "bushing", "isBushingPrimary": True, "span": 2},
            {"slot": 7, "productId": "bushing", "isBushingSecondary": True, "primarySlot": 6},
        ]}
        restored = SlotAssignment.from_rack_layout(layout)
        assert restored[7].bushing_pair_slot == 6
        assert restored[6].category_code == "bushing"

    def test_empty_rack_layout(self):
        assert SlotAssignment().to_rack_layout() is None
        assert SlotAssignment.from_rack_layout({"slots": []}) is None
