"""
NWP Consensus: Multi-Model Weather Aggregation

Reduces the forecasts of several numerical-weather-prediction models for
the same place and hour to one consensus value per parameter, with the
diagnostics needed to explain it.

Architecture:
    statistics.py          - median, quartiles, MAD, quantile
    trimmed.py             - trimmed / winsorized / IQR-fenced means
    gaussian.py            - gaussian-weighted means
    weighted.py            - per-model weighted averages
    wmo_tables.py          - weather-code data tables (versioned)
    wmo_algorithms.py      - categorical consensus strategies + registry
    precipitation.py       - amount (log-gaussian) and PoP
    wind.py                - circular wind-direction consensus
    time_interpretation.py - instant vs preceding-hour slot indices
    time_slots.py          - 6-hour tranche aggregation
    config.py              - JSON parameter settings
    isolation.py           - per-call failure isolation
    ensemble.py            - hourly multi-model engine

Entry Points:
    main.py - run every configured parameter over a forecast payload
"""

__version__ = "1.0.0"
__author__ = "NWP Consensus"
