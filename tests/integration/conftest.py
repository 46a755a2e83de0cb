"""
Pytest configuration for integration tests.

Provides a configurator wired to the in-memory store with draft Q-1 loaded.
"""

import pytest

from chassis_configurator.controllers.configurator import ChassisConfigurator
from chassis_configurator.controllers.quote_controller import QuoteController
from chassis_configurator.utils.settings import ConfiguratorSettings


@pytest.fixture
def settings():
    return ConfiguratorSettings(autosave_interval=0.01, clone_load_initial_delay=0.001)


@pytest.fixture
async def configurator(store, settings, error_handler):
    """
    Configurator with draft Q-1 loaded.

    Background cleanups are drained and auto-save stopped on teardown.
    """
    quotes = QuoteController(store, settings, error_handler=error_handler)
    ok, error = await quotes.load_quote("Q-1")
    assert ok, error

    configurator = ChassisConfigurator(store, quotes, settings, error_handler)
    yield configurator

    quotes.stop_autosave()
    await configurator.drain()
