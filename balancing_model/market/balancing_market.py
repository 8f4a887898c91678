"""
BalancingMarketService: per-timeslot imbalance aggregation and settlement.

The service is the SettlementContext handed to settlement processors. Once per
timeslot it:

    1. Computes each broker's net imbalance from Accounting
       (market position [MWh] * 1000 + net load [kWh]).
    2. Adds every imbalance to a running total (the balance report).
    3. Attaches the broker's balancing orders on its active tariffs.
    4. Delegates the batch to the configured SettlementProcessor.

Reference prices are derived from the wholesale orderbooks of the current
timeslot. Orderbook clearing prices are per MWh, settlement prices per kWh:

    pPlus  =  max(clearing price) * rm_premium / 1000 + rm_fee
    pMinus = -min(clearing price) / rm_premium / 1000 - rm_fee

The configured default spot price is used when no orderbook has cleared.

TYPICAL WORKFLOW
----------------
1. Create and initialize the service:
    service = BalancingMarketService(
        config=BalancingMarketConfig(rm_premium=1.1, rm_fee=0.04),
        accounting=accounting,
        tariff_repo=tariff_repo,
        orderbook_repo=orderbook_repo,
        capacity_control=capacity_control,
        timeslot_fn=lambda: clock.current_timeslot,
    )
    service.initialize()

2. Settle each timeslot:
    total = service.activate(brokers)

3. Query results until the next activation:
    service.get_regulation(broker)
"""

from __future__ import annotations

import logging
from typing import Callable, Dict, List, Optional

import numpy as np

from balancing_model.config import BalancingMarketConfig
from balancing_model.core.broker import Broker
from balancing_model.core.charge_info import ChargeInfo
from balancing_model.core.interfaces import (
    Accounting,
    CapacityControl,
    ImbalanceAccumulator,
    TariffRepository,
)
from balancing_model.market.repositories import OrderbookRepo
from balancing_model.settings import KWH_PER_MWH
from balancing_model.settlement import SettlementProcessor, create_processor

logger = logging.getLogger(__name__)


class TotalImbalance:
    """Running total of the imbalance reported for one timeslot [kWh]."""

    def __init__(self) -> None:
        self.value = 0.0

    def add(self, addend: float) -> float:
        self.value += addend
        return self.value


class BalancingMarketService:
    """
    Balancing market for one simulation.

    Args:
        config: Market configuration.
        accounting: Source of broker market positions and net loads.
        tariff_repo: Source of balancing orders.
        orderbook_repo: Wholesale clearing results.
        capacity_control: Queries and exercises balancing orders.
        timeslot_fn: Returns the serial number of the current timeslot.
        processor: Settlement strategy. Defaults to the one named by
            config.settlement_process.
        rng: Random generator used to draw the balancing cost.
    """

    def __init__(
        self,
        config: BalancingMarketConfig,
        accounting: Accounting,
        tariff_repo: TariffRepository,
        orderbook_repo: OrderbookRepo,
        capacity_control: CapacityControl,
        timeslot_fn: Callable[[], int],
        processor: Optional[SettlementProcessor] = None,
        rng: Optional[np.random.Generator] = None,
    ) -> None:
        self.config = config
        self.accounting = accounting
        self.tariff_repo = tariff_repo
        self.orderbook_repo = orderbook_repo
        self.capacity_control = capacity_control
        self.timeslot_fn = timeslot_fn
        if processor is None:
            processor = create_processor(config.settlement_process, capacity_control)
        self.processor = processor
        self._rng = rng if rng is not None else np.random.default_rng()
        self._balancing_cost = 0.0
        self._results: Optional[Dict[Broker, ChargeInfo]] = None

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def initialize(self) -> str:
        """Draw the balancing cost for this simulation."""
        self._balancing_cost = float(self._rng.uniform(
            self.config.balancing_cost_min, self.config.balancing_cost_max))
        self._results = None
        logger.info("Configured BM: balancing cost = %s, (pPlus',pMinus') = (%s,%s)",
                    self._balancing_cost, self.config.p_plus_prime,
                    self.config.p_minus_prime)
        return "BalancingMarket"

    def activate(self, brokers: List[Broker]) -> float:
        """
        Settle the current timeslot.

        Returns:
            Total imbalance over all brokers [kWh].
        """
        logger.info("Activate")
        report = self.make_total_imbalance()
        self._results = self.balance_timeslot(brokers, report)
        logger.info("Balance report ts %s: %s", self.timeslot_fn(), report.value)
        return report.value

    def make_total_imbalance(self) -> TotalImbalance:
        return TotalImbalance()

    def balance_timeslot(
        self,
        brokers: List[Broker],
        accumulator: ImbalanceAccumulator,
    ) -> Dict[Broker, ChargeInfo]:
        """
        Build a ChargeInfo per broker and settle the batch.

        Returns:
            ChargeInfo by broker, in the order of brokers.
        """
        charge_infos: Dict[Broker, ChargeInfo] = {}
        for broker in brokers:
            imbalance = self.get_market_balance(broker)
            info = ChargeInfo(broker, imbalance)
            accumulator.add(imbalance)
            for order in self.tariff_repo.find_balancing_orders(broker):
                info.add_balancing_order(order)
            charge_infos[broker] = info

        logger.info("balancing prices: pPlus=%s, pMinus=%s",
                    self.get_p_plus(), self.get_p_minus())
        self.processor.settle(self, list(charge_infos.values()))
        return charge_infos

    # ------------------------------------------------------------------
    # Broker positions
    # ------------------------------------------------------------------

    def get_market_balance(self, broker: Broker) -> float:
        """
        Broker's energy balance [kWh]. Positive for over-production,
        negative for under-production.
        """
        result = (self.accounting.get_current_market_position(broker) * KWH_PER_MWH
                  + self.accounting.get_current_net_load(broker))
        logger.info("market balance for %s: %s", broker.username, result)
        return result

    def get_regulation(self, broker: Broker) -> float:
        """Exercised regulation for broker in the most recent activation [kWh]."""
        info = self._results.get(broker) if self._results is not None else None
        if info is None:
            logger.error("Null balancing result for broker %s", broker.username)
            return 0.0
        return info.curtailment

    # ------------------------------------------------------------------
    # Reference prices
    # ------------------------------------------------------------------

    def get_spot_price(self) -> float:
        """Most recent valid clearing price for the current timeslot [currency/kWh]."""
        timeslot = self.timeslot_fn()
        result = self.config.default_spot_price / KWH_PER_MWH
        orderbook = self.orderbook_repo.find_spot_by_timeslot(timeslot)
        if orderbook is not None:
            result = orderbook.clearing_price / KWH_PER_MWH
        else:
            logger.info("null Orderbook")
        logger.info("ts %s, spot price %s", timeslot, result)
        return result

    def _clearing_prices(self) -> np.ndarray:
        orderbooks = self.orderbook_repo.find_all_by_timeslot(self.timeslot_fn())
        return np.array([ob.clearing_price for ob in orderbooks
                         if ob.clearing_price is not None], dtype=float)

    def get_p_plus(self) -> float:
        """Zero-quantity price of up-regulation energy [currency/kWh], positive."""
        prices = self._clearing_prices()
        result = float(prices.max()) if prices.size else self.config.default_spot_price
        return result * self.config.rm_premium / KWH_PER_MWH + self.config.rm_fee

    def get_p_minus(self) -> float:
        """Zero-quantity price of down-regulation energy [currency/kWh], negative."""
        prices = self._clearing_prices()
        result = float(prices.min()) if prices.size else self.config.default_spot_price
        return -result / self.config.rm_premium / KWH_PER_MWH - self.config.rm_fee

    def get_p_plus_prime(self) -> float:
        return self.config.p_plus_prime

    def get_p_minus_prime(self) -> float:
        return self.config.p_minus_prime

    def get_balancing_cost(self) -> float:
        return self._balancing_cost

    def get_default_spot_price(self) -> float:
        return self.config.default_spot_price
