from __future__ import annotations

import itertools
from dataclasses import dataclass, field

_tariff_ids = itertools.count(1)


@dataclass(frozen=True)
class Broker:
    """
    Market participant identity.

    Brokers are owned by an external repository; the settlement engine only
    uses them as opaque, hashable keys.
    """
    username: str


@dataclass(eq=False)
class Tariff:
    """
    Tariff offered by a broker.

    Balancing orders are placed against a tariff. Only orders on active
    tariffs take part in settlement.
    """
    broker: Broker
    tariff_id: int = field(default_factory=lambda: next(_tariff_ids))
    is_active: bool = True
