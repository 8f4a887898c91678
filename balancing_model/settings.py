"""
Global numeric settings for the balancing-market settlement engine.

These values should be consistent across the data model, the settlement
processors and the market service.
"""

# Quantities below this magnitude are treated as zero during settlement [kWh]
# (1 milliwatt-hour).
EPSILON = 1e-6

# RegulationAccumulator ignores capacity updates smaller than this [kWh]
REGULATION_EPSILON = 1e-4

# Wholesale positions and clearing prices are quoted per MWh, settlement
# works per kWh.
KWH_PER_MWH = 1000.0

# Number of timeslots of orderbooks kept by the OrderbookRepo
# (at least two days at hourly resolution plus slack).
ORDERBOOK_LOOKBACK = 168 * 2 + 60
