"""Fuel vanity address generator."""

__version__ = "0.1.0"

from fuelvanity.errors import DerivationError, FuelVanityError, InvalidSpecError, SearchError
from fuelvanity.generator import (
    SearchOutcome,
    SearchProgress,
    SearchResult,
    SearchState,
    VanitySearch,
    search,
)
from fuelvanity.matcher import MatchPosition, MatchSpec, matches

__all__ = [
    "DerivationError",
    "FuelVanityError",
    "InvalidSpecError",
    "MatchPosition",
    "MatchSpec",
    "SearchError",
    "SearchOutcome",
    "SearchProgress",
    "SearchResult",
    "SearchState",
    "VanitySearch",
    "matches",
    "search",
]
