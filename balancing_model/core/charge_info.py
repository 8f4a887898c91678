from __future__ import annotations

from dataclasses import dataclass, field
from typing import List

from balancing_model.core.balancing_order import BalancingOrder
from balancing_model.core.broker import Broker


# Compared by identity: records are used as keys in exclusion sets while
# their charges are being filled in.
@dataclass(eq=False)
class ChargeInfo:
    """
    Per-broker, per-timeslot settlement record.

    Created fresh each timeslot by the market service with the broker's net
    imbalance, then filled in by a settlement processor.

    Attributes:
        broker:
            Broker being settled.

        net_imbalance:
            Market position plus net load [kWh]. Positive means surplus,
            negative means shortfall. Fixed at construction.

        balancing_orders:
            Balancing orders owned by the broker, in attachment order.

        balance_charge_p1:
            Imbalance charge [currency]. Positive is a credit to the broker.

        balance_charge_p2:
            Payment for exercised balancing capacity [currency]. Always zero
            for brokers without exercised orders.

        curtailment:
            Total exercised regulation across the broker's orders [kWh].
    """
    broker: Broker
    net_imbalance: float
    balancing_orders: List[BalancingOrder] = field(default_factory=list)
    balance_charge_p1: float = 0.0
    balance_charge_p2: float = 0.0
    curtailment: float = 0.0

    @property
    def broker_name(self) -> str:
        return self.broker.username

    @property
    def balance_charge(self) -> float:
        """Total balancing charge (P1 + P2)."""
        return self.balance_charge_p1 + self.balance_charge_p2

    def add_balancing_order(self, order: BalancingOrder) -> None:
        self.balancing_orders.append(order)

    def add_curtailment(self, kwh: float) -> None:
        self.curtailment += kwh
