"""
Unit tests for the settlement data model.

Tests cover:
    1. BalancingOrder: direction and identity
    2. RegulationAccumulator: clamping and updates
    3. ChargeInfo: charges and curtailment

Run tests with: pytest tests/test_data_model.py -v
"""

import pytest

from balancing_model.core import Broker, BalancingOrder, ChargeInfo, RegulationAccumulator, Tariff


class TestBalancingOrder:
    """Tests for BalancingOrder."""

    def setup_method(self):
        self.broker = Broker("A1")
        self.tariff = Tariff(self.broker)

    def test_up_regulation(self):
        order = BalancingOrder(self.broker, self.tariff, 0.6, 0.05)

        assert order.is_up_regulation
        assert not order.is_down_regulation
        assert order.tariff_id == self.tariff.tariff_id

    def test_down_regulation(self):
        order = BalancingOrder(self.broker, self.tariff, -0.6, -0.05)

        assert order.is_down_regulation
        assert not order.is_up_regulation

    def test_unique_ids(self):
        o1 = BalancingOrder(self.broker, self.tariff, 0.6, 0.05)
        o2 = BalancingOrder(self.broker, self.tariff, 0.6, 0.05)

        assert o1.order_id != o2.order_id
        assert o1 != o2
        assert len({o1, o2}) == 2

    def test_immutable(self):
        order = BalancingOrder(self.broker, self.tariff, 0.6, 0.05)
        with pytest.raises(AttributeError):
            order.price = 0.1


class TestRegulationAccumulator:
    """Tests for RegulationAccumulator sign handling."""

    def test_valid_capacities(self):
        acc = RegulationAccumulator(5.0, -3.0)

        assert acc.up_regulation_capacity == 5.0
        assert acc.down_regulation_capacity == -3.0

    def test_wrong_sign_clamped(self):
        acc = RegulationAccumulator(-5.0, 3.0)

        assert acc.up_regulation_capacity == 0.0
        assert acc.down_regulation_capacity == 0.0

    def test_nan_clamped(self):
        acc = RegulationAccumulator(float('nan'), float('nan'))

        assert acc.up_regulation_capacity == 0.0
        assert acc.down_regulation_capacity == 0.0

    def test_add(self):
        acc = RegulationAccumulator(5.0, -3.0)
        acc.add(RegulationAccumulator(1.0, -2.0))

        assert acc.up_regulation_capacity == pytest.approx(6.0)
        assert acc.down_regulation_capacity == pytest.approx(-5.0)

    def test_add_wrong_sign_ignored(self):
        acc = RegulationAccumulator(5.0, -3.0)
        acc.add_up_regulation(-1.0)
        acc.add_down_regulation(1.0)

        assert acc.up_regulation_capacity == 5.0
        assert acc.down_regulation_capacity == -3.0

    def test_small_values_filtered(self):
        acc = RegulationAccumulator(5.0, -3.0)
        acc.set_up_regulation_capacity(1e-5)
        acc.set_down_regulation_capacity(-1e-5)

        assert acc.up_regulation_capacity == 0.0
        assert acc.down_regulation_capacity == 0.0


class TestChargeInfo:
    """Tests for ChargeInfo."""

    def setup_method(self):
        self.broker = Broker("A1")
        self.info = ChargeInfo(self.broker, -12.5)

    def test_initial_state(self):
        assert self.info.broker_name == "A1"
        assert self.info.net_imbalance == -12.5
        assert self.info.balancing_orders == []
        assert self.info.balance_charge == 0.0
        assert self.info.curtailment == 0.0

    def test_balance_charge(self):
        self.info.balance_charge_p1 = -1.21
        self.info.balance_charge_p2 = 0.30375

        assert self.info.balance_charge == pytest.approx(-0.90625)

    def test_curtailment(self):
        self.info.add_curtailment(5.0)
        self.info.add_curtailment(2.5)

        assert self.info.curtailment == pytest.approx(7.5)

    def test_orders_in_attachment_order(self):
        tariff = Tariff(self.broker)
        o1 = BalancingOrder(self.broker, tariff, 0.6, 0.05)
        o2 = BalancingOrder(self.broker, tariff, -0.6, -0.05)
        self.info.add_balancing_order(o1)
        self.info.add_balancing_order(o2)

        assert self.info.balancing_orders == [o1, o2]

    def test_identity_semantics(self):
        other = ChargeInfo(self.broker, -12.5)

        assert other != self.info
        assert len({other, self.info}) == 2
