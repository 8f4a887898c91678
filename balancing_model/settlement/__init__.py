"""
Settlement strategies for the balancing market.

This module provides:
    - SettlementProcessor: strategy interface
    - MeritOrderEntry, MeritOrderCurve: merit-order bookkeeping
    - StaticSettlementProcessor: per-timeslot merit-order settlement with VCG pricing
    - SETTLEMENT_PROCESSORS: registry of strategies by configuration name

Usage:
    from balancing_model.settlement import create_processor
    processor = create_processor("static", capacity_control)
"""

from typing import Dict, Type

from balancing_model.core.interfaces import CapacityControl
from balancing_model.settlement.base import SettlementProcessor
from balancing_model.settlement.merit_order import MeritOrderCurve, MeritOrderEntry
from balancing_model.settlement.static_processor import StaticSettlementProcessor

SETTLEMENT_PROCESSORS: Dict[str, Type] = {
    'static': StaticSettlementProcessor,
}


def create_processor(name: str, capacity_control: CapacityControl) -> SettlementProcessor:
    """Instantiate the settlement strategy registered under name."""
    try:
        processor_cls = SETTLEMENT_PROCESSORS[name]
    except KeyError:
        raise ValueError(f"Unknown settlement process {name!r}, "
                         f"expected one of {sorted(SETTLEMENT_PROCESSORS)}") from None
    return processor_cls(capacity_control)


__all__ = [
    'SettlementProcessor',
    'MeritOrderCurve',
    'MeritOrderEntry',
    'StaticSettlementProcessor',
    'SETTLEMENT_PROCESSORS',
    'create_processor',
]
