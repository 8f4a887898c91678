"""
Balancing orders and regulation capacity.

A BalancingOrder is a broker-submitted option that lets the operator curtail
or inject energy on one of the broker's tariffs at a broker-chosen price. The
sign of the exercise ratio encodes the direction:

    exercise_ratio > 0 : up-regulation (curtail consumption, the market is short)
    exercise_ratio < 0 : down-regulation (absorb surplus, the market is long)

How much energy an order can actually deliver depends on the subscriber
population of its tariff at the moment of settlement. CapacityControl reports
this as a RegulationAccumulator, which is a transient value and must never be
cached across timeslots.

Sign convention (seen from the balancing market):
    - up_regulation_capacity   >= 0 : energy delivered to the market [kWh]
    - down_regulation_capacity <= 0 : energy taken from the market [kWh]
"""

from __future__ import annotations

import itertools
import logging
import math
from dataclasses import dataclass, field

from balancing_model.core.broker import Broker, Tariff
from balancing_model.settings import REGULATION_EPSILON

logger = logging.getLogger(__name__)

_order_ids = itertools.count(1)


@dataclass(frozen=True)
class BalancingOrder:
    """
    Immutable balancing order.

    Attributes:
        broker:
            Owner of the order.

        tariff:
            Tariff whose subscribers provide the regulation capacity.

        exercise_ratio:
            Fraction of curtailable usage that may be exercised. The sign
            gives the direction (positive = up, negative = down).

        price:
            Price per kWh [currency/kWh] asked for exercising the order.
    """
    broker: Broker
    tariff: Tariff
    exercise_ratio: float
    price: float
    order_id: int = field(default_factory=lambda: next(_order_ids))

    @property
    def tariff_id(self) -> int:
        return self.tariff.tariff_id

    @property
    def is_up_regulation(self) -> bool:
        return self.exercise_ratio > 0.0

    @property
    def is_down_regulation(self) -> bool:
        return self.exercise_ratio < 0.0


@dataclass
class RegulationAccumulator:
    """
    Available regulation capacity for one balancing order at one point in time.

    Wrong-signed or NaN values are clamped to zero at construction; they are
    never propagated into the settlement as faults.
    """
    up_regulation_capacity: float = 0.0
    down_regulation_capacity: float = 0.0

    def __post_init__(self):
        """Clamp invalid capacities to zero."""
        up = self.up_regulation_capacity
        down = self.down_regulation_capacity
        if up is None or math.isnan(up) or up < 0.0:
            if up is None or math.isnan(up) or up < -1.0e-12:
                logger.warning("up-regulation capacity %s clamped to 0.0", up)
            up = 0.0
        if down is None or math.isnan(down) or down > 0.0:
            if down is None or math.isnan(down) or down > 1.0e-12:
                logger.warning("down-regulation capacity %s clamped to 0.0", down)
            down = 0.0
        self.up_regulation_capacity = float(up)
        self.down_regulation_capacity = float(down)

    # ------------------------------------------------------------------
    # Updates
    # ------------------------------------------------------------------

    def set_up_regulation_capacity(self, value: float) -> None:
        """Set the up-regulation capacity. Negative values are rejected."""
        filtered = _filter_value(value)
        if filtered < 0.0:
            logger.warning("Attempt to set negative up-regulation capacity %s", filtered)
            return
        self.up_regulation_capacity = filtered

    def set_down_regulation_capacity(self, value: float) -> None:
        """Set the down-regulation capacity. Positive values are rejected."""
        filtered = _filter_value(value)
        if filtered > 0.0:
            logger.warning("Attempt to set positive down-regulation capacity %s", filtered)
            return
        self.down_regulation_capacity = filtered

    def add(self, other: RegulationAccumulator) -> None:
        """Add the capacities of another accumulator to this one."""
        self.set_up_regulation_capacity(
            self.up_regulation_capacity + other.up_regulation_capacity)
        self.set_down_regulation_capacity(
            self.down_regulation_capacity + other.down_regulation_capacity)

    def add_up_regulation(self, amount: float) -> None:
        if amount < 0.0:
            logger.warning("Attempt to add negative up-regulation capacity %s", amount)
            return
        self.set_up_regulation_capacity(self.up_regulation_capacity + amount)

    def add_down_regulation(self, amount: float) -> None:
        if amount > 0.0:
            logger.warning("Attempt to add positive down-regulation capacity %s", amount)
            return
        self.set_down_regulation_capacity(self.down_regulation_capacity + amount)


def _filter_value(value: float) -> float:
    # small values and NaN count as no capacity
    if math.isnan(value) or abs(value) < REGULATION_EPSILON:
        return 0.0
    return value
