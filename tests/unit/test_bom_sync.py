"""
Unit Tests: BOM Line Synchronizer

Tests for controllers/bom_sync.py.
Covers:
- Price/cost totals
- Committing a new chassis with accessories
- Rehydrating an edit from the snapshot or the rack layout
- Part number regeneration on recommit
- In-place replacement of the accessory run
- Removal detection and durable row deletion
"""

import pytest

from chassis_configurator.controllers.bom_sync import BOMLineSynchronizer, derive_part_number
from chassis_configurator.controllers.slot_engine import SlotAssignmentEngine
from chassis_configurator.models.bom import BOMLineItem, Quote
from chassis_configurator.models.catalog import PartNumberConfig
from chassis_configurator.models.session import ConfigurationSession
from chassis_configurator.utils.error_handler import ErrorCategory


# ============================================================================
# Fixtures
# ============================================================================

@pytest.fixture
def sync(store, error_handler):
    return BOMLineSynchronizer(store, error_handler=error_handler)


@pytest.fixture
def configured(mtx_session):
    """MTX session: relay in slot 3, remote display, remote panel accessory"""
    engine = SlotAssignmentEngine(mtx_session)
    engine.assign(engine.catalog.card("relay-8"), 3)
    mtx_session.has_remote_display = True
    mtx_session.select_accessory("remote-panel")
    return mtx_session


@pytest.fixture
def committed(sync, configured):
    quote = Quote(id="Q-1")
    line = sync.commit_new(quote, configured)
    return quote, line


def edit(sync, quote, line, catalog):
    session = sync.begin_edit(quote, line.id, catalog=catalog)
    return session, SlotAssignmentEngine(session)


# ============================================================================
# Totals
# ============================================================================

class TestTotals:
    """Tests for compute_totals."""

    def test_chassis_plus_cards(self, configured):
        assert BOMLineSynchronizer.compute_totals(configured) == (1100.0, 650.0)

    def test_bushing_counted_once(self, ltx_session):
        engine = SlotAssignmentEngine(ltx_session)
        engine.assign(engine.catalog.card("bushing"), 6)
        assert BOMLineSynchronizer.compute_totals(ltx_session) == (2400.0, 1400.0)

    def test_shared_slot_skipped(self, mtx_session):
        engine = SlotAssignmentEngine(mtx_session)
        engine.assign(engine.catalog.card("relay-8"), 1)
        mtx_session.slot_assignments[1].is_shared_level4_config = True
        assert BOMLineSynchronizer.compute_totals(mtx_session) == (1000.0, 600.0)

    def test_empty_chassis(self, mtx_session):
        assert BOMLineSynchronizer.compute_totals(mtx_session) == (1000.0, 600.0)


# ============================================================================
# Commit
# ============================================================================

class TestCommitNew:
    """Tests for commit_new."""

    def test_appends_chassis_then_accessories(self, committed):
        quote, line = committed
        assert quote.line_items[0] is line
        accessory = quote.line_items[1]
        assert accessory.is_accessory
        assert accessory.parent_line_id == line.id
        assert accessory.part_number == "RP-"
        assert accessory.unit_price == 500.0

    def test_line_snapshot(self, committed):
        _, line = committed
        assert line.part_number == "QTMS-MTX-00R0000-D1"
        assert line.unit_price == 1100.0
        assert line.slot_assignments[3].id == "relay-8"
        assert line.rack_layout["slots"][0]["productId"] == "relay-8"
        assert line.configuration.has_remote_display
        assert line.part_number_context.pn_config.prefix == "QTMS-MTX-"

    def test_session_reset(self, committed, configured):
        assert len(configured.slot_assignments) == 0
        assert configured.accessory_selection == []
        assert not configured.has_remote_display

    def test_unknown_accessory_skipped(self, sync, configured):
        configured.select_accessory("ghost")
        quote = Quote(id="Q-1")
        sync.commit_new(quote, configured)
        assert len(quote.line_items) == 2


# ============================================================================
# Edit
# ============================================================================

class TestBeginEdit:
    """Tests for rehydrating a stored chassis line."""

    def test_from_snapshot(self, sync, committed, mtx_catalog):
        quote, line = committed
        session = sync.begin_edit(quote, line.id, catalog=mtx_catalog)

        assert session.slot_assignments.signatures() == line.slot_assignments.signatures()
        assert session.slot_assignments is not line.slot_assignments
        assert session.has_remote_display
        assert session.accessory_selection == ["remote-panel"]
        assert session.edit_baseline.part_number == "QTMS-MTX-00R0000-D1"
        assert not sync.has_changes(session)

    def test_from_rack_layout(self, sync, committed, mtx_catalog):
        quote, line = committed
        line.slot_assignments = None

        session = sync.begin_edit(quote, line.id, catalog=mtx_catalog)

        assert session.slot_assignments.signatures() == {3: "relay-8::RLY-8"}

    def test_stored_context_without_catalog(self, sync, committed):
        quote, line = committed
        session = sync.begin_edit(quote, line.id)
        session.has_remote_display = False
        assert derive_part_number(session) == "QTMS-MTX-00R0000-0"

    def test_missing_line(self, sync, committed):
        quote, _ = committed
        with pytest.raises(ValueError):
            sync.begin_edit(quote, "nope")

    def test_accessory_line_rejected(self, sync, committed):
        quote, _ = committed
        with pytest.raises(ValueError):
            sync.begin_edit(quote, quote.line_items[1].id)

    def test_baseline_records_linked_ids(self, sync, committed, mtx_catalog):
        quote, line = committed
        line.slot_assignments[3].level4_config_id = "L4-1"
        session = sync.begin_edit(quote, line.id, catalog=mtx_catalog)
        assert session.edit_baseline.record_ids == frozenset({"L4-1"})

    def test_missing_components(self, sync, committed, mtx_catalog):
        quote, line = committed
        del mtx_catalog.cards["relay-8"]

        session = sync.begin_edit(quote, line.id, catalog=mtx_catalog)

        assert sync.missing_components(session) == ["relay-8"]

    def test_no_missing_components(self, sync, committed, mtx_catalog):
        quote, line = committed
        session = sync.begin_edit(quote, line.id, catalog=mtx_catalog)
        assert sync.missing_components(session) == []


class TestCommitEdit:
    """Tests for recommitting an edited line."""

    def test_unchanged_keeps_part_number(self, sync, committed, mtx_catalog):
        quote, line = committed
        # Admin rules changed since the first commit
        mtx_catalog.pn_config = PartNumberConfig(prefix="NEW-", slot_count=7)
        session, _ = edit(sync, quote, line, mtx_catalog)

        updated = sync.commit_edit(quote, session)

        assert updated.part_number == "QTMS-MTX-00R0000-D1"

    def test_remote_toggle_changes_suffix_only(self, sync, committed, mtx_catalog):
        quote, line = committed
        session, _ = edit(sync, quote, line, mtx_catalog)
        session.has_remote_display = False

        updated = sync.commit_edit(quote, session)

        assert updated.part_number == "QTMS-MTX-00R0000-0"

    def test_remote_toggle_uses_stored_rules(self, sync, committed, mtx_catalog):
        quote, line = committed
        mtx_catalog.pn_config = PartNumberConfig(prefix="NEW-", slot_count=7)
        session, _ = edit(sync, quote, line, mtx_catalog)
        session.has_remote_display = False

        updated = sync.commit_edit(quote, session)

        assert updated.part_number == "QTMS-MTX-00R0000-0"

    def test_slot_change_regenerates(self, sync, committed, mtx_catalog):
        quote, line = committed
        session, engine = edit(sync, quote, line, mtx_catalog)
        engine.assign(mtx_catalog.card("analog-4"), 1)

        updated = sync.commit_edit(quote, session)

        assert updated.part_number == "QTMS-MTX-A40R0000-D1"
        assert updated.unit_price == 1250.0

    def test_bushing_count_change_regenerates(self, sync, ltx_session, ltx_catalog):
        engine = SlotAssignmentEngine(ltx_session)
        engine.assign(ltx_catalog.card("bushing"), 6)
        ltx_session.bushing_counts["slot-6"] = 2
        quote = Quote(id="Q-1")
        line = sync.commit_new(quote, ltx_session)
        assert line.part_number == "QTMS-LTX-00000B20000000-0"

        session, _ = edit(sync, quote, line, ltx_catalog)
        session.bushing_counts["slot-6"] = 3
        updated = sync.commit_edit(quote, session)

        assert updated.part_number == "QTMS-LTX-00000B30000000-0"

    def test_replaces_in_place(self, sync, committed, mtx_catalog):
        quote, line = committed
        trailing = BOMLineItem(product=mtx_catalog.card("relay-8"), id="other")
        quote.line_items.append(trailing)
        session, _ = edit(sync, quote, line, mtx_catalog)
        session.deselect_accessory("remote-panel")
        session.select_accessory("power-cord")

        updated = sync.commit_edit(quote, session)

        assert updated.id == line.id
        assert [item.product.id for item in quote.line_items] == ["mtx", "power-cord", "relay-8"]
        assert quote.line_items[0] is updated
        assert quote.line_items[1].parent_line_id == line.id

    def test_accessory_reuse_keeps_id_and_quantity(self, sync, committed, mtx_catalog):
        quote, line = committed
        accessory = quote.line_items[1]
        accessory.quantity = 3
        session, _ = edit(sync, quote, line, mtx_catalog)

        sync.commit_edit(quote, session)

        assert quote.line_items[1].id == accessory.id
        assert quote.line_items[1].quantity == 3
        assert len(quote.line_items) == 2

    def test_quantity_preserved(self, sync, committed, mtx_catalog):
        quote, line = committed
        line.quantity = 4
        session, _ = edit(sync, quote, line, mtx_catalog)
        assert sync.commit_edit(quote, session).quantity == 4

    def test_not_editing(self, sync, mtx_catalog):
        with pytest.raises(ValueError):
            sync.commit_edit(Quote(id="Q-1"), ConfigurationSession(catalog=mtx_catalog))

    def test_discard_edit_leaves_line(self, sync, committed, mtx_catalog):
        quote, line = committed
        before = line.to_dict()
        session, engine = edit(sync, quote, line, mtx_catalog)
        engine.clear(3)

        sync.discard_edit(session)

        assert quote.line_items[0].to_dict() == before
        assert session.edit_baseline is None


# ============================================================================
# Removal
# ============================================================================

class TestRemoval:
    """Tests for detect_removed and sync_removed."""

    @pytest.fixture
    def items(self, mtx_catalog):
        return [
            BOMLineItem(product=mtx_catalog.chassis, id="row-1"),
            BOMLineItem(product=mtx_catalog.card("power-cord"), id="row-2"),
            BOMLineItem(product=mtx_catalog.card("remote-panel"), part_number="RP-"),
        ]

    def test_detect_removed(self, items):
        removed = BOMLineSynchronizer.detect_removed(items, items[:1])
        assert [item.identity_key for item in removed] == ["row-2", "remote-panel::RP-"]

    def test_detect_nothing_removed(self, items):
        assert BOMLineSynchronizer.detect_removed(items, list(reversed(items))) == []

    async def test_sync_deletes_durable_rows(self, sync, store, items):
        ok, _ = await sync.sync_removed("Q-1", items, items[:1])
        assert ok
        assert store.calls_to("delete_line_items") == [("Q-1", ("row-2",))]

    async def test_sync_nothing_to_delete(self, sync, store, items):
        assert await sync.sync_removed("Q-1", items, items) == (True, None)
        assert store.calls_to("delete_line_items") == []

    async def test_protected_records_skipped(self, sync, store, items):
        items[1].level4_config = {"recordId": "L4-open"}
        ok, _ = await sync.sync_removed("Q-1", items, items[:1], protected={"L4-open"})
        assert ok
        assert store.calls_to("delete_line_items") == []

    async def test_store_failure_is_warning(self, sync, store, items, error_handler):
        store.fail_next("delete_line_items", "conflict")
        ok, error = await sync.sync_removed("Q-1", items, items[:1])
        assert not ok
        assert "conflict" in error
        assert error_handler.get_history(category=ErrorCategory.CLEANUP)

    async def test_without_store(self, items):
        ok, error = await BOMLineSynchronizer().sync_removed("Q-1", items, [])
        assert not ok
