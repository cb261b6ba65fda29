"""
QuantRank core package initialization.

Multi-factor equity ranking and historical rebalancing backtests.
The public surface is ``rank``, ``simulate`` and ``ResultCache``.
"""

from __future__ import annotations

from importlib import metadata as _importlib_metadata

try:
    __version__ = _importlib_metadata.version("quantrank")
except _importlib_metadata.PackageNotFoundError:
    __version__ = "0.0.0"

from .backtest import BacktestEngine, SimulationParams, simulate, simulate_horizons
from .data.fetcher import FetchCapability
from .data.storage import InMemoryCacheStore, MongoCacheStore, ResultCache, fingerprint
from .errors import (
    ConfigurationError,
    MissingDataError,
    QuantRankError,
    UpstreamUnavailableError,
)
from .models import (
    ActionType,
    BacktestResult,
    MetricDirection,
    PricePoint,
    RankedSnapshot,
    Snapshot,
    Strategy,
    Transaction,
)
from .ranking import RankingEngine, WeightVector, rank

__all__ = [
    "__version__",
    "ActionType",
    "BacktestEngine",
    "BacktestResult",
    "ConfigurationError",
    "FetchCapability",
    "InMemoryCacheStore",
    "MetricDirection",
    "MissingDataError",
    "MongoCacheStore",
    "PricePoint",
    "QuantRankError",
    "RankedSnapshot",
    "RankingEngine",
    "ResultCache",
    "SimulationParams",
    "Snapshot",
    "Strategy",
    "Transaction",
    "UpstreamUnavailableError",
    "WeightVector",
    "fingerprint",
    "package_info",
    "rank",
    "simulate",
    "simulate_horizons",
]


def package_info() -> str:
    """Return a short, human-friendly package info string."""
    return f"QuantRank {__version__}"
