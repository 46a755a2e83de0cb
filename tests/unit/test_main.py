"""
Unit Tests: Command Line

Tests for main.py argument parsing and the configure run.
"""

import argparse
import json

import pytest

from chassis_configurator.communication.memory_store import InMemoryStore
from chassis_configurator.main import _slot_count, _slot_value, parse_args, run
from chassis_configurator.utils.settings import ConfiguratorSettings


@pytest.fixture
def cli_store(catalog_data):
    return InMemoryStore.from_dict(catalog_data)


class TestParseArgs:
    """Tests for argument parsing."""

    def test_slot_value(self):
        assert _slot_value("3=relay-8") == (3, "relay-8")

    @pytest.mark.parametrize("text", ["3", "x=relay", "3="])
    def test_slot_value_invalid(self, text):
        with pytest.raises(argparse.ArgumentTypeError):
            _slot_value(text)

    def test_slot_count_invalid(self):
        with pytest.raises(argparse.ArgumentTypeError):
            _slot_count("6=three")

    def test_repeatable_options(self):
        args = parse_args(["cat.json", "ltx", "-p", "3=relay-8", "-p", "6=bushing", "-b", "6=3", "-r"])
        assert args.place == [(3, "relay-8"), (6, "bushing")]
        assert args.bushings == [(6, 3)]
        assert args.remote
        assert not args.save
        assert args.sub_config == []


class TestRun:
    """Tests for the configure run."""

    async def test_prints_part_number(self, cli_store, capsys, error_handler):
        args = parse_args(["cat.json", "mtx", "-p", "3=relay-8", "-r"])

        code = await run(args, cli_store, ConfiguratorSettings())

        out = capsys.readouterr().out
        assert code == 0
        assert "Part number: QTMS-MTX-00R0000-D1" in out
        assert "Price: 1100.00" in out

    async def test_rejection_exit_code(self, cli_store, capsys, error_handler):
        args = parse_args(["cat.json", "ltx", "-p", "8=relay-8"])
        assert await run(args, cli_store, ConfiguratorSettings()) == 2
        assert "wrong-slot" in capsys.readouterr().out

    async def test_unknown_chassis(self, cli_store, capsys, error_handler):
        args = parse_args(["cat.json", "zzz"])
        assert await run(args, cli_store, ConfiguratorSettings()) == 1

    async def test_save_as_json(self, cli_store, capsys, error_handler):
        args = parse_args(["cat.json", "ltx", "-p", "6=bushing", "-b", "7=3", "--save", "--json"])

        code = await run(args, cli_store, ConfiguratorSettings())

        out = capsys.readouterr().out
        assert code == 0
        quote = json.loads(out[out.index("{"):])
        assert quote["status"] == "draft"
        assert quote["lineItems"][0]["partNumber"] == "QTMS-LTX-00000B30000000-0"
        assert cli_store.draft_snapshot(quote["id"])

    async def test_sub_config_file_linked(self, cli_store, capsys, error_handler, tmp_path):
        payload = {"channels": [{"id": 1, "label": "Trip"}]}
        path = tmp_path / "digital.json"
        path.write_text(json.dumps(payload))
        args = parse_args(["cat.json", "ltx", "-p", "3=digital-16", "-c", f"3={path}", "--save", "--json"])

        assert await run(args, cli_store, ConfiguratorSettings()) == 0

        out = capsys.readouterr().out
        quote = json.loads(out[out.index("{"):])
        slot = quote["lineItems"][0]["slotAssignments"][0]
        assert slot["level4Config"] == payload
        assert cli_store.level4_record(slot["level4BomItemId"])["payload"] == payload

    async def test_missing_sub_config_left_unconfigured(self, cli_store, capsys, error_handler):
        args = parse_args(["cat.json", "ltx", "-p", "3=digital-16"])

        assert await run(args, cli_store, ConfiguratorSettings()) == 0

        assert "Slot 3: no sub-configuration given" in capsys.readouterr().out
        assert cli_store.calls_to("delete_level4_record")
