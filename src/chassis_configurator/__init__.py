"""
Chassis Configurator

Slot assignment and part number derivation for modular monitoring chassis,
with sub-configuration linking and quote line-item reconciliation.
"""

__version__ = "1.0.0"
