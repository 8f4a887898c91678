"""
Balancing market service and its repositories.

Usage:
    from balancing_model.market import BalancingMarketService, InMemoryTariffRepo, OrderbookRepo
"""

from balancing_model.market.balancing_market import BalancingMarketService, TotalImbalance
from balancing_model.market.repositories import InMemoryTariffRepo, Orderbook, OrderbookRepo

__all__ = [
    'BalancingMarketService',
    'TotalImbalance',
    'InMemoryTariffRepo',
    'Orderbook',
    'OrderbookRepo',
]
