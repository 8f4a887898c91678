"""
StaticSettlementProcessor: merit-order settlement with VCG pricing.

Settles one timeslot for the whole broker population at once. Balancing
orders attached to the brokers' ChargeInfo records are ranked on a merit-order
curve together with the regulating market (a dummy order at the pPlus/pMinus
reference price), the cheapest capacity that covers the total imbalance is
exercised, and every broker receives a two-part charge:

    P2 (balance_charge_p2):
        Vickrey-Clarke-Groves payment for exercised balancing capacity. A
        broker is paid what it would have cost to replace its exercised
        volume from the non-exercised rest of the curve, excluding its own
        remaining orders.

    P1 (balance_charge_p1):
        Imbalance charge. The cost of covering the imbalance without the
        broker's own orders is spread over the brokers in proportion to their
        share of the total imbalance. Brokers whose imbalance opposes the
        total ("non-contributors") are credited with the cost they help avoid.

SIGN CONVENTIONS
----------------
    net imbalance  > 0 : broker in surplus (market long, down-regulation)
    net imbalance  < 0 : broker short (market short, up-regulation)
    charges        > 0 : credit to the broker
    exercised kWh  > 0 : up-regulation, < 0 : down-regulation

The settlement is not strictly budget balanced. The regulating market acts as
counterparty for any difference, reported in the budget log line and in
get_metrics().

TYPICAL WORKFLOW
----------------
1. Create the processor with a CapacityControl:
    processor = StaticSettlementProcessor(capacity_control)

2. Settle a batch of ChargeInfo records against a SettlementContext:
    processor.settle(context, charge_infos)
    # charge_infos[i].balance_charge_p1 / balance_charge_p2 are now set,
    # exercised orders were dispatched through capacity_control

3. Inspect the pass:
    processor.get_metrics()
"""

from __future__ import annotations

import logging
from typing import Any, Dict, List, Set, Tuple

import numpy as np

from balancing_model.core.charge_info import ChargeInfo
from balancing_model.core.interfaces import CapacityControl, SettlementContext
from balancing_model.settings import EPSILON
from balancing_model.settlement.merit_order import MeritOrderCurve, MeritOrderEntry

logger = logging.getLogger(__name__)


class StaticSettlementProcessor:
    """
    Merit-order settlement of one timeslot.

    Stateless across timeslots apart from the metrics of the most recent
    settle() call.

    Args:
        capacity_control: Used to query and exercise balancing orders.
    """

    def __init__(self, capacity_control: CapacityControl) -> None:
        self.capacity_control = capacity_control
        self._reset_metrics()

    # ------------------------------------------------------------------
    # Entry point
    # ------------------------------------------------------------------

    def settle(self, context: SettlementContext, charge_infos: List[ChargeInfo]) -> None:
        """
        Fill in P1 and P2 for every ChargeInfo and exercise balancing orders.

        Args:
            context: Source of reference prices and slopes.
            charge_infos: One record per broker. Mutated in place.
        """
        self._reset_metrics()

        imbalances = np.array([info.net_imbalance for info in charge_infos], dtype=float)
        total_imbalance = float(np.sum(imbalances))
        total_qty = float(np.sum(np.abs(imbalances)))
        logger.info("total imbalance = %s", total_imbalance)

        if abs(total_imbalance) < EPSILON:
            if total_qty < EPSILON:
                # everybody balanced
                return
            # net zero with individual imbalances: settle as slightly long
            total_imbalance = EPSILON / 2.0

        p_plus = context.get_p_plus()
        p_minus = context.get_p_minus()
        logger.info("pPlus = %s, pMinus = %s", p_plus, p_minus)

        curve = self._build_curve(charge_infos, total_imbalance)
        self._insert_dummy_orders(context, curve, total_imbalance * 2.0)
        logger.debug("merit order: %s", ", ".join(str(e) for e in curve))
        logger.debug("cumulative capacity: %s", curve.cumulative_capacity())

        curve.determine_exercise_set(total_imbalance)
        non_exercised = curve.non_exercised_tail()

        non_participants: Set[ChargeInfo] = set()
        for info in charge_infos:
            info.balance_charge_p2 = self.compute_vcg_charge(
                info, total_imbalance, curve, non_exercised, non_participants)

        self.compute_imbalance_charges(context, charge_infos, total_imbalance, curve)
        self.exercise_controls(charge_infos, curve)
        self._log_budget(charge_infos, curve)

    # ------------------------------------------------------------------
    # Merit-order curve
    # ------------------------------------------------------------------

    def _build_curve(self, charge_infos: List[ChargeInfo],
                     total_imbalance: float) -> MeritOrderCurve:
        """Candidate orders in the needed direction with usable capacity."""
        up_regulation = total_imbalance < 0.0
        entries = []
        for info in charge_infos:
            for order in info.balancing_orders:
                if up_regulation and order.exercise_ratio > 0.0:
                    entries.append(MeritOrderEntry.for_order(info, order))
                elif not up_regulation and order.exercise_ratio < 0.0:
                    entries.append(MeritOrderEntry.for_order(info, order))

        candidates = []
        for entry in entries:
            entry.available_capacity = self._query_capacity(entry, up_regulation)
            if abs(entry.available_capacity) >= EPSILON:
                candidates.append(entry)
        return MeritOrderCurve(candidates)

    def _query_capacity(self, entry: MeritOrderEntry, up_regulation: bool) -> float:
        try:
            accumulator = self.capacity_control.get_regulation_capacity(entry.order)
        except Exception:
            logger.exception("Capacity query failed for order %s", entry)
            self._anomalies.append(f"capacity query failed for order {entry.order.order_id}")
            return 0.0
        attribute = 'up_regulation_capacity' if up_regulation else 'down_regulation_capacity'
        if accumulator is None or not hasattr(accumulator, attribute):
            logger.error("No regulation capacity reported for order %s", entry)
            self._anomalies.append(f"no capacity reported for order {entry.order.order_id}")
            return 0.0
        if up_regulation:
            capacity = accumulator.up_regulation_capacity
            if capacity is None or np.isnan(capacity) or capacity < 0.0:
                logger.warning("Up-regulation capacity %s of order %s clamped to 0",
                               capacity, entry)
                return 0.0
        else:
            capacity = accumulator.down_regulation_capacity
            if capacity is None or np.isnan(capacity) or capacity > 0.0:
                logger.warning("Down-regulation capacity %s of order %s clamped to 0",
                               capacity, entry)
                return 0.0
        return float(capacity)

    def _insert_dummy_orders(self, context: SettlementContext, curve: MeritOrderCurve,
                             capacity: float) -> None:
        """Regulating-market order covering twice the total imbalance."""
        price = context.get_p_plus()
        slope = context.get_p_plus_prime()
        if capacity >= 0.0:
            price = context.get_p_minus()
            slope = context.get_p_minus_prime()
        curve.insert_dummy_orders(-capacity, price, slope)

    # ------------------------------------------------------------------
    # Pricing
    # ------------------------------------------------------------------

    def compute_vcg_charge(
        self,
        target: ChargeInfo,
        total_imbalance: float,
        curve: MeritOrderCurve,
        non_exercised: List[MeritOrderEntry],
        non_participants: Set[ChargeInfo],
    ) -> float:
        """
        VCG payment for the capacity exercised from target's orders.

        Replaces target's exercised volume from the non-exercised tail,
        skipping entries owned by target or by any of non_participants.
        non_participants is restored before returning.

        Returns:
            Payment to target [currency]. Positive is a credit.
        """
        sgn = np.sign(total_imbalance)
        remaining = 0.0
        for entry in curve:
            if entry.available_capacity != 0.0 and entry.exercised_capacity == 0.0:
                break
            if entry.info is target:
                remaining += entry.exercised_capacity
            if abs(entry.available_capacity - entry.exercised_capacity) > 0.0:
                break

        price = 0.0
        non_participants.add(target)
        for entry in non_exercised:
            if abs(remaining) < EPSILON:
                break
            if entry.info in non_participants:
                continue
            available = entry.available_capacity - entry.exercised_capacity
            used = sgn * max(sgn * available, sgn * remaining)
            cost = entry.total_ne_cost(used)
            logger.debug("VCG for %s: %s kWh from %s costs %s",
                         target.broker_name, used, entry, cost)
            price += sgn * cost
            remaining -= used
        non_participants.discard(target)

        if abs(remaining) > EPSILON:
            logger.error("Not enough orders to compute VCG price for %s", target.broker_name)
            self._anomalies.append(f"VCG price incomplete for {target.broker_name}")
        return float(-price)

    def compute_imbalance_charges(
        self,
        context: SettlementContext,
        charge_infos: List[ChargeInfo],
        total_imbalance: float,
        curve: MeritOrderCurve,
    ) -> None:
        """Fill in P1 for every ChargeInfo."""
        if abs(total_imbalance) < EPSILON:
            p_plus = context.get_p_plus()
            p_minus = context.get_p_minus()
            for info in charge_infos:
                if info.net_imbalance < 0.0:
                    info.balance_charge_p1 = p_plus * info.net_imbalance
                else:
                    info.balance_charge_p1 = -p_minus * info.net_imbalance
            return

        sgn = np.sign(total_imbalance)
        contributors = []
        non_contributors = []
        for info in charge_infos:
            if info.net_imbalance == 0.0 or np.sign(info.net_imbalance) == sgn:
                contributors.append(info)
            else:
                non_contributors.append(info)

        for info in contributors:
            exclude = set(non_contributors)
            exclude.add(info)
            remains, non_exercised, cost = self._reclear(curve, exclude, total_imbalance)
            for other in contributors:
                if other is info:
                    continue
                cost -= self.compute_vcg_charge(
                    other, total_imbalance, remains, non_exercised, exclude)
            info.balance_charge_p1 = float(
                -sgn * cost * info.net_imbalance / total_imbalance)

        for info in non_contributors:
            exclude = {info}
            remains, non_exercised, cost = self._reclear(curve, exclude, total_imbalance)
            for other in charge_infos:
                if other is info:
                    continue
                cost -= self.compute_vcg_charge(
                    other, total_imbalance, remains, non_exercised, exclude)
            info.balance_charge_p1 = float(
                -sgn * cost * info.net_imbalance / total_imbalance)

    def _reclear(
        self,
        curve: MeritOrderCurve,
        exclude: Set[ChargeInfo],
        total_imbalance: float,
    ) -> Tuple[MeritOrderCurve, List[MeritOrderEntry], float]:
        """Clear the curve again without the excluded brokers' orders."""
        remains = curve.without(exclude)
        remains.determine_exercise_set(total_imbalance)
        return remains, remains.non_exercised_tail(), remains.regulating_market_cost()

    # ------------------------------------------------------------------
    # Dispatch
    # ------------------------------------------------------------------

    def exercise_controls(self, charge_infos: List[ChargeInfo],
                          curve: MeritOrderCurve) -> None:
        """
        Exercise every order with a non-zero exercised volume.

        The broker's P2 is pro-rated over its exercised orders by volume.
        Curtailment is recorded only for orders whose dispatch succeeded.
        """
        for info in charge_infos:
            exercised = [e for e in curve
                         if e.info is info and e.exercised_capacity != 0.0]
            planned = float(np.sum([e.exercised_capacity for e in exercised]))
            if planned == 0.0:
                if exercised:
                    logger.warning("Zero net curtailment for %s", info.broker_name)
                continue
            for entry in exercised:
                payment = info.balance_charge_p2 * entry.exercised_capacity / planned
                try:
                    self.capacity_control.exercise_balancing_control(
                        entry.order, entry.exercised_capacity, payment)
                except Exception:
                    logger.exception("Exercise failed for order %s", entry)
                    self._anomalies.append(
                        f"exercise failed for order {entry.order.order_id}")
                    continue
                info.add_curtailment(entry.exercised_capacity)
                self._orders_exercised += 1
                self._exercised_kwh += entry.exercised_capacity

    def _log_budget(self, charge_infos: List[ChargeInfo], curve: MeritOrderCurve) -> None:
        for info in charge_infos:
            logger.info("%s: (%s, %s)", info.broker_name,
                        info.balance_charge_p2, info.balance_charge_p1)
        self._rm_cost = -curve.regulating_market_cost()
        self._broker_cost = float(np.sum(
            [info.balance_charge_p1 + info.balance_charge_p2 for info in charge_infos]))
        logger.info("Budget: rm cost = %s, broker cost = %s",
                    self._rm_cost, self._broker_cost)

    # ------------------------------------------------------------------
    # Metrics
    # ------------------------------------------------------------------

    def _reset_metrics(self) -> None:
        self._orders_exercised = 0
        self._exercised_kwh = 0.0
        self._rm_cost = 0.0
        self._broker_cost = 0.0
        self._anomalies: List[str] = []

    def get_metrics(self) -> Dict[str, Any]:
        """
        Return figures of the most recent settle() call.

        Returns:
            Dictionary with keys:
                - 'orders_exercised': Balancing orders dispatched
                - 'exercised_kwh': Net exercised regulation [kWh]
                - 'rm_cost': Cost of regulating-market energy [currency]
                - 'broker_cost': Sum of all broker charges (P1 + P2) [currency]
                - 'anomalies': Collaborator failures and incomplete prices
        """
        return {
            'orders_exercised': self._orders_exercised,
            'exercised_kwh': self._exercised_kwh,
            'rm_cost': self._rm_cost,
            'broker_cost': self._broker_cost,
            'anomalies': list(self._anomalies),
        }
