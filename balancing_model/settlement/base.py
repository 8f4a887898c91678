from __future__ import annotations

from typing import List, Protocol

from balancing_model.core.charge_info import ChargeInfo
from balancing_model.core.interfaces import SettlementContext


class SettlementProcessor(Protocol):
    """
    Settlement strategy.

    A processor receives the full batch of per-broker ChargeInfo records for
    one timeslot and fills in their charges in place. Exercising balancing
    orders happens as a side effect through the processor's CapacityControl.
    """

    def settle(self, context: SettlementContext, charge_infos: List[ChargeInfo]) -> None: ...
