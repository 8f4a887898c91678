"""
In-memory repositories feeding the balancing market.

InMemoryTariffRepo
    Tariffs by id and their balancing orders. Orders are kept as an up/down
    pair per tariff; a newer order of the same direction replaces the older
    one.

OrderbookRepo
    Wholesale clearing results per timeslot. Clearing prices are per MWh.
    Timeslots are identified by their serial number.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Dict, List, Optional

from balancing_model.core.balancing_order import BalancingOrder
from balancing_model.core.broker import Broker, Tariff
from balancing_model.settings import ORDERBOOK_LOOKBACK

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Tariffs and balancing orders
# ---------------------------------------------------------------------------

@dataclass
class _OrderPair:
    up_order: Optional[BalancingOrder] = None
    down_order: Optional[BalancingOrder] = None

    def add(self, order: BalancingOrder) -> None:
        if order.exercise_ratio >= 0.0:
            self.up_order = order
        else:
            self.down_order = order

    def orders(self) -> List[BalancingOrder]:
        return [o for o in (self.up_order, self.down_order) if o is not None]


class InMemoryTariffRepo:
    """Tariffs and balancing orders, indexed by tariff id."""

    def __init__(self) -> None:
        self._tariffs: Dict[int, Tariff] = {}
        self._balancing_orders: Dict[int, _OrderPair] = {}

    def add_tariff(self, tariff: Tariff) -> None:
        self._tariffs[tariff.tariff_id] = tariff

    def find_tariff_by_id(self, tariff_id: int) -> Optional[Tariff]:
        return self._tariffs.get(tariff_id)

    def find_tariffs_by_broker(self, broker: Broker) -> List[Tariff]:
        return [t for t in self._tariffs.values() if t.broker == broker]

    def revoke_tariff(self, tariff: Tariff) -> None:
        """Deactivate a tariff. Its balancing orders stop taking part in settlement."""
        tariff.is_active = False

    def add_balancing_order(self, order: BalancingOrder) -> None:
        """Store an order against its tariff. Orders for unknown tariffs are ignored."""
        if order.tariff_id not in self._tariffs:
            logger.warning("Balancing order %s for unknown tariff %s ignored",
                           order.order_id, order.tariff_id)
            return
        self._balancing_orders.setdefault(order.tariff_id, _OrderPair()).add(order)

    def get_balancing_orders(self) -> List[BalancingOrder]:
        result = []
        for pair in self._balancing_orders.values():
            result.extend(pair.orders())
        return result

    def find_balancing_orders(self, broker: Broker) -> List[BalancingOrder]:
        """Balancing orders of broker on its active tariffs."""
        result = []
        for tariff_id, pair in self._balancing_orders.items():
            tariff = self._tariffs[tariff_id]
            if tariff.broker == broker and tariff.is_active:
                result.extend(pair.orders())
        return result

    def recycle(self) -> None:
        self._tariffs.clear()
        self._balancing_orders.clear()


# ---------------------------------------------------------------------------
# Orderbooks
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class Orderbook:
    """Wholesale clearing result. clearing_price is None when nothing cleared."""
    timeslot: int
    clearing_price: Optional[float]


class OrderbookRepo:
    """
    Orderbooks per timeslot.

    Args:
        lookback: Number of timeslots kept behind the newest one.
    """

    def __init__(self, lookback: int = ORDERBOOK_LOOKBACK) -> None:
        self.lookback = lookback
        self._orderbooks: Dict[int, List[Orderbook]] = {}
        self._latest: Dict[int, Orderbook] = {}
        self._spot: Dict[int, Orderbook] = {}
        self._last_timeslot = 0

    def make_orderbook(self, timeslot: int, clearing_price: Optional[float]) -> Orderbook:
        result = Orderbook(timeslot, clearing_price)
        self._latest[timeslot] = result
        if clearing_price is not None:
            self._spot[timeslot] = result
        self._orderbooks.setdefault(timeslot, []).append(result)
        logger.debug("Created new Orderbook ts=%s, clearingPrice=%s", timeslot, clearing_price)
        if timeslot > self._last_timeslot:
            self._last_timeslot = timeslot
            self.cleanup()
        return result

    def find_by_timeslot(self, timeslot: int) -> Optional[Orderbook]:
        """Most recent orderbook for timeslot."""
        return self._latest.get(timeslot)

    def find_spot_by_timeslot(self, timeslot: int) -> Optional[Orderbook]:
        """Most recent orderbook for timeslot with a clearing price."""
        return self._spot.get(timeslot)

    def find_all_by_timeslot(self, timeslot: int) -> List[Orderbook]:
        return list(self._orderbooks.get(timeslot, []))

    def size(self) -> int:
        return len(self._latest)

    def cleanup(self) -> None:
        """Drop orderbooks more than lookback timeslots behind the newest one."""
        oldest = self._last_timeslot - self.lookback
        for timeslot in sorted(self._orderbooks):
            if timeslot >= oldest:
                break
            del self._orderbooks[timeslot]
            self._latest.pop(timeslot, None)
            self._spot.pop(timeslot, None)

    def recycle(self) -> None:
        self._orderbooks.clear()
        self._latest.clear()
        self._spot.clear()
        self._last_timeslot = 0
