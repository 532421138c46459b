"""Bid ledger core package.

This package reconciles subcontractor bid uploads into a canonical bidder
directory and turns the resulting packages into cost-per-square-foot
analytics.  It powers the command line interface distributed with this
repository and any user interface that wants to build on top of the shared
application logic through :class:`BidLedgerService`.
"""

from .aggregate import PackageFilter, compute_aggregates, compute_time_series, project_totals
from .config import (
    AggregationConfig,
    AppConfig,
    MatchingConfig,
    OutputConfig,
    StorageConfig,
    ValidationConfig,
    load_config,
)
from .directory import BidderDirectory
from .errors import BidLedgerError, ConflictError, NotFoundError, ValidationError
from .normalize import display_name, normalize_name
from .persistence import JsonFilePersistence, MemoryPersistence, PersistenceGateway
from .reporting import export_aggregates
from .resolver import BidderDecision, IdentityResolver
from .service import BidLedgerService
from .similarity import SimilarityScorer, TfidfScorer, TokenBlendScorer, create_scorer
from .statistics import BidStats, compute_bid_stats
from .store import Store
from .validation import ValidationLedger

__all__ = [
    "AggregationConfig",
    "AppConfig",
    "BidLedgerError",
    "BidLedgerService",
    "BidStats",
    "BidderDecision",
    "BidderDirectory",
    "ConflictError",
    "IdentityResolver",
    "JsonFilePersistence",
    "MatchingConfig",
    "MemoryPersistence",
    "NotFoundError",
    "OutputConfig",
    "PackageFilter",
    "PersistenceGateway",
    "SimilarityScorer",
    "StorageConfig",
    "Store",
    "TfidfScorer",
    "TokenBlendScorer",
    "ValidationConfig",
    "ValidationError",
    "ValidationLedger",
    "compute_aggregates",
    "compute_bid_stats",
    "compute_time_series",
    "create_scorer",
    "display_name",
    "export_aggregates",
    "load_config",
    "normalize_name",
    "project_totals",
]
