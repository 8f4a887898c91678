"""
Collaborator interfaces consumed by the settlement engine.

These are structural Protocols: the market service, tests and any external
simulator provide objects that conform to them without inheriting from a
common base. Unit tests inject mocks built against these Protocols.
"""

from __future__ import annotations

from typing import List, Protocol

from balancing_model.core.balancing_order import BalancingOrder, RegulationAccumulator
from balancing_model.core.broker import Broker


class SettlementContext(Protocol):
    """Reference prices and slopes queried fresh for each settlement."""

    def get_p_plus(self) -> float: ...

    def get_p_minus(self) -> float: ...

    def get_p_plus_prime(self) -> float: ...

    def get_p_minus_prime(self) -> float: ...

    def get_default_spot_price(self) -> float: ...

    def get_balancing_cost(self) -> float: ...

    def get_market_balance(self, broker: Broker) -> float: ...

    def get_regulation(self, broker: Broker) -> float: ...


class CapacityControl(Protocol):
    """Capacity query and exercise of balancing orders."""

    def get_regulation_capacity(self, order: BalancingOrder) -> RegulationAccumulator: ...

    def exercise_balancing_control(
        self, order: BalancingOrder, kwh: float, payment: float
    ) -> None: ...


class TariffRepository(Protocol):
    def find_balancing_orders(self, broker: Broker) -> List[BalancingOrder]: ...


class Accounting(Protocol):
    """Broker positions. Market position is in MWh, net load in kWh."""

    def get_current_market_position(self, broker: Broker) -> float: ...

    def get_current_net_load(self, broker: Broker) -> float: ...


class ImbalanceAccumulator(Protocol):
    """Running total of imbalance, returns the new total."""

    def add(self, value: float) -> float: ...
