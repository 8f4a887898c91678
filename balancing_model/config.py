"""
Configuration of the balancing market service.

Values are usually read from a flat properties mapping such as

    balancemkt.balancingMarketService.rmPremium = 1.1
    balancemkt.balancingMarketService.pPlusPrime = 0.00002

BalancingMarketConfig.from_mapping() accepts those keys with or without the
prefix, and string or numeric values.
"""

from __future__ import annotations

import math
from dataclasses import dataclass, fields
from typing import Any, Dict, Mapping

from balancing_model.settlement import SETTLEMENT_PROCESSORS

CONFIG_PREFIX = "balancemkt.balancingMarketService."

# property key -> attribute
_KEYS = {
    'balancingCostMin': 'balancing_cost_min',
    'balancingCostMax': 'balancing_cost_max',
    'pPlusPrime': 'p_plus_prime',
    'pMinusPrime': 'p_minus_prime',
    'rmPremium': 'rm_premium',
    'rmFee': 'rm_fee',
    'defaultSpotPrice': 'default_spot_price',
    'settlementProcess': 'settlement_process',
}


@dataclass
class BalancingMarketConfig:
    """
    Attributes:
        balancing_cost_min, balancing_cost_max:
            Range of the balancing cost drawn at initialization [currency/kWh].

        p_plus_prime:
            Slope of up-regulation cost [currency/kWh^2], usually >= 0.

        p_minus_prime:
            Slope of down-regulation cost [currency/kWh^2], usually <= 0.

        rm_premium:
            Ratio of regulating-market price to spot price.

        rm_fee:
            Fixed cost for regulation energy [currency/kWh].

        default_spot_price:
            Spot price used when the wholesale market has not cleared [currency/MWh].

        settlement_process:
            Name of the settlement strategy.
    """
    balancing_cost_min: float = 0.0
    balancing_cost_max: float = 0.0
    p_plus_prime: float = 0.0
    p_minus_prime: float = 0.0
    rm_premium: float = 1.1
    rm_fee: float = 0.035
    default_spot_price: float = 30.0
    settlement_process: str = "static"

    def __post_init__(self):
        """Validate configuration values."""
        for f in fields(self):
            if f.name == 'settlement_process':
                continue
            value = getattr(self, f.name)
            if isinstance(value, bool) or not isinstance(value, (int, float)):
                raise ValueError(f"{f.name} must be a number, got {value!r}")
            if not math.isfinite(value):
                raise ValueError(f"{f.name} must be finite, got {value}")
            setattr(self, f.name, float(value))
        if self.rm_premium <= 0.0:
            raise ValueError(f"rm_premium must be positive, got {self.rm_premium}")
        if self.balancing_cost_min > self.balancing_cost_max:
            raise ValueError(f"balancing_cost_min {self.balancing_cost_min} "
                             f"> balancing_cost_max {self.balancing_cost_max}")
        if self.default_spot_price < 0.0:
            raise ValueError(f"default_spot_price must be >= 0, got {self.default_spot_price}")
        if not self.settlement_process:
            self.settlement_process = "static"
        if self.settlement_process not in SETTLEMENT_PROCESSORS:
            raise ValueError(f"Unknown settlement process {self.settlement_process!r}")

    @classmethod
    def from_mapping(cls, mapping: Mapping[str, Any]) -> BalancingMarketConfig:
        """Build a config from property keys, ignoring the common prefix."""
        kwargs: Dict[str, Any] = {}
        for key, value in mapping.items():
            name = key[len(CONFIG_PREFIX):] if key.startswith(CONFIG_PREFIX) else key
            if name not in _KEYS:
                raise ValueError(f"Unknown configuration key {key!r}")
            attr = _KEYS[name]
            if attr == 'settlement_process':
                kwargs[attr] = str(value).strip()
            else:
                try:
                    kwargs[attr] = float(value)
                except (TypeError, ValueError):
                    raise ValueError(f"{key} must be a number, got {value!r}") from None
        return cls(**kwargs)
