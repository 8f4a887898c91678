"""
Merit-order curve for balancing settlement.

The curve is an explicit list of entries sorted by ascending price, with a
cumulative-quantity index computed on demand. Entries come in two kinds:

    - order entries wrap a broker's BalancingOrder together with the capacity
      CapacityControl reported for it;
    - dummy entries represent the external regulating market: unlimited
      (in practice: twice the total imbalance) capacity at a base price that
      rises linearly with the volume drawn from it.

CONVENTIONS
-----------
Naming: a *price* is per unit [currency/kWh], a *cost* is price * quantity.

Quantities carry the regulation sign, seen from the balancing market:
    - up-regulation   (market short, total imbalance < 0): capacities > 0
    - down-regulation (market long,  total imbalance > 0): capacities < 0

A dummy entry with a non-zero slope is split wherever its marginal price
reaches the price of a more expensive order, so that the curve stays sorted
by marginal price. Each dummy segment remembers in ``start_x`` the volume
already drawn from the earlier segments; its total cost includes the uplift
its marginal price imposes on that earlier volume.
"""

from __future__ import annotations

import copy
import logging
from dataclasses import dataclass
from typing import Iterable, Iterator, List, Optional, Set

import numpy as np

from balancing_model.core.balancing_order import BalancingOrder
from balancing_model.core.charge_info import ChargeInfo
from balancing_model.settings import EPSILON

logger = logging.getLogger(__name__)


@dataclass(eq=False)
class MeritOrderEntry:
    """One step of the merit-order curve."""

    info: Optional[ChargeInfo] = None
    order: Optional[BalancingOrder] = None
    available_capacity: float = 0.0
    exercised_capacity: float = 0.0
    price: float = 0.0
    slope: float = 0.0
    start_x: float = 0.0

    # ------------------------------------------------------------------
    # Construction
    # ------------------------------------------------------------------

    @classmethod
    def for_order(cls, info: ChargeInfo, order: BalancingOrder) -> MeritOrderEntry:
        return cls(info=info, order=order, price=order.price)

    @classmethod
    def dummy(
        cls,
        available_capacity: float,
        price: float,
        slope: float,
        start_x: float = 0.0,
    ) -> MeritOrderEntry:
        """Regulating-market segment with a linear price markup."""
        return cls(
            available_capacity=available_capacity,
            price=price,
            slope=slope,
            start_x=start_x,
        )

    def duplicate(self) -> MeritOrderEntry:
        return copy.copy(self)

    @property
    def is_dummy(self) -> bool:
        return self.order is None

    # ------------------------------------------------------------------
    # Pricing
    # ------------------------------------------------------------------

    def marginal_price(self, qty: float) -> float:
        """Price of the next unit after drawing qty from this entry."""
        return self.price + self.slope * qty

    def total_ne_cost(self, qty: float) -> float:
        """
        Total cost of drawing qty from the non-exercised part of this entry.

        Includes the extra cost the raised marginal price imposes on the
        already exercised capacity and on volume drawn from earlier dummy
        segments.
        """
        old_price = self.marginal_price(self.exercised_capacity)
        new_price = self.marginal_price(self.exercised_capacity + qty)
        return (new_price * qty
                + (new_price - old_price) * self.exercised_capacity
                + self.start_x * (new_price - self.price))

    def total_e_cost(self) -> float:
        """Total cost of the exercised capacity, including earlier dummy volume."""
        mp1 = 0.0
        if self.start_x != 0.0:
            mp1 = self.marginal_price(self.start_x)
        mp2 = self.marginal_price(self.start_x + self.exercised_capacity)
        return mp2 * self.exercised_capacity + self.start_x * (mp2 - mp1)

    def __str__(self) -> str:
        if self.order is None:
            return "Dummy"
        return (f"{self.order.broker.username}:{self.order.tariff_id}:{self.price}"
                f":{self.available_capacity}:{self.exercised_capacity}")


class MeritOrderCurve:
    """
    Entries sorted by ascending price. Ties keep insertion order.

    Supports the operations of one settlement pass: inserting (and splitting)
    the regulating-market dummy, walking the curve to cover an imbalance, and
    locating the non-exercised tail.
    """

    def __init__(self, entries: Iterable[MeritOrderEntry] = ()) -> None:
        entries = list(entries)
        order = np.argsort(np.array([e.price for e in entries], dtype=float), kind="stable")
        self._entries: List[MeritOrderEntry] = [entries[i] for i in order]

    # ------------------------------------------------------------------
    # Container protocol
    # ------------------------------------------------------------------

    def __iter__(self) -> Iterator[MeritOrderEntry]:
        return iter(self._entries)

    def __len__(self) -> int:
        return len(self._entries)

    def __getitem__(self, index: int) -> MeritOrderEntry:
        return self._entries[index]

    def prices(self) -> np.ndarray:
        return np.array([e.price for e in self._entries], dtype=float)

    def cumulative_capacity(self) -> np.ndarray:
        """Cumulative available volume [kWh, unsigned] at the end of each entry."""
        return np.cumsum(np.abs([e.available_capacity for e in self._entries]))

    def index_of(self, entry: MeritOrderEntry) -> int:
        for i, candidate in enumerate(self._entries):
            if candidate is entry:
                return i
        raise ValueError(f"entry {entry} is not on the curve")

    def tail(self, entry: MeritOrderEntry) -> List[MeritOrderEntry]:
        """Entries from entry (inclusive) to the end of the curve."""
        return self._entries[self.index_of(entry):]

    def insert(self, entry: MeritOrderEntry) -> None:
        """Insert after all entries with a price at or below entry.price."""
        position = int(np.searchsorted(self.prices(), entry.price, side="right"))
        self._entries.insert(position, entry)

    def without(self, excluded: Set[ChargeInfo]) -> MeritOrderCurve:
        """Copy of the curve without the entries owned by excluded brokers."""
        remains = MeritOrderCurve()
        remains._entries = [e.duplicate() for e in self._entries if e.info not in excluded]
        return remains

    # ------------------------------------------------------------------
    # Regulating-market dummy orders
    # ------------------------------------------------------------------

    def insert_dummy_orders(self, capacity: float, price: float, slope: float) -> None:
        """
        Insert the regulating-market dummy at the given base price.

        With a non-zero slope the dummy is split around every more expensive
        order its marginal price would overtake.
        """
        dummy = MeritOrderEntry.dummy(capacity, price, slope, 0.0)
        self.insert(dummy)
        if dummy.slope != 0.0:
            self._split_dummy_order(dummy)

    def _split_dummy_order(self, dummy: MeritOrderEntry) -> None:
        while True:
            tail = self.tail(dummy)
            if len(tail) <= 1:
                # dummy order is last
                return
            next_entry = tail[1]
            capacity = (next_entry.price - dummy.price) / dummy.slope
            if np.sign(capacity) != np.sign(dummy.available_capacity):
                logger.error("Sign of needed capacity %s != sign of dummy avail capacity %s",
                             capacity, dummy.available_capacity)
                return
            if abs(capacity) >= abs(dummy.available_capacity):
                return
            new_dummy = MeritOrderEntry.dummy(
                dummy.available_capacity - capacity,
                next_entry.price + EPSILON / 1000.0,
                dummy.slope,
                capacity + dummy.start_x,
            )
            dummy.available_capacity = capacity
            self.insert(new_dummy)
            dummy = new_dummy

    # ------------------------------------------------------------------
    # Exercise
    # ------------------------------------------------------------------

    def determine_exercise_set(self, total_imbalance: float) -> float:
        """
        Walk the curve until total_imbalance is covered.

        Fills in exercised_capacity for every visited entry and returns the
        imbalance covered by the walk.
        """
        remaining = total_imbalance
        sgn = np.sign(total_imbalance)
        for entry in self._entries:
            if sgn * remaining <= 0.0:
                break
            exercise = min(sgn * remaining, -sgn * entry.available_capacity)
            entry.exercised_capacity = float(-sgn * exercise)
            logger.debug("exercising order %s for %s at %s",
                         entry, entry.exercised_capacity, entry.price)
            remaining -= sgn * exercise
        return float(total_imbalance - remaining)

    def non_exercised_tail(self) -> List[MeritOrderEntry]:
        """
        Tail of the curve starting at the last exercised entry.

        The first entry of the tail is either partially exercised or the last
        fully exercised one.
        """
        last_exercised = self._entries[0]
        for entry in self._entries:
            if entry.exercised_capacity == 0.0:
                break
            last_exercised = entry
            if abs(entry.available_capacity - entry.exercised_capacity) > 0.0:
                # partially exercised
                break
        return self.tail(last_exercised)

    def regulating_market_cost(self) -> float:
        """
        Cost of the regulating power drawn by the last exercise walk.

        Depends on meeting the dummy segments in curve order: the last
        exercised segment carries the uplift on all earlier ones.
        """
        rp_cost = 0.0
        for entry in self._entries:
            if entry.is_dummy and entry.exercised_capacity != 0.0:
                rp_cost = -entry.total_e_cost()
        return rp_cost
