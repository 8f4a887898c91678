"""
Core data model and collaborator interfaces for balancing-market settlement.

This module provides:
    - Broker, Tariff: external identities
    - BalancingOrder: broker-submitted regulation option
    - RegulationAccumulator: transient regulation capacity of an order
    - ChargeInfo: per-broker settlement record
    - SettlementContext, CapacityControl, TariffRepository, Accounting,
      ImbalanceAccumulator: consumed interfaces

Usage:
    from balancing_model.core import BalancingOrder, ChargeInfo, RegulationAccumulator
"""

from balancing_model.core.broker import Broker, Tariff
from balancing_model.core.balancing_order import BalancingOrder, RegulationAccumulator
from balancing_model.core.charge_info import ChargeInfo
from balancing_model.core.interfaces import (
    Accounting,
    CapacityControl,
    ImbalanceAccumulator,
    SettlementContext,
    TariffRepository,
)

__all__ = [
    'Broker',
    'Tariff',
    'BalancingOrder',
    'RegulationAccumulator',
    'ChargeInfo',
    'Accounting',
    'CapacityControl',
    'ImbalanceAccumulator',
    'SettlementContext',
    'TariffRepository',
]
