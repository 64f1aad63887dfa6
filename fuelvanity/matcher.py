"""Pattern matching for vanity address search."""

import logging
from dataclasses import dataclass
from enum import Enum

from fuelvanity.core import ADDRESS_ALPHABET, ADDRESS_HEX_LENGTH, strip_prefix
from fuelvanity.errors import InvalidSpecError

logger = logging.getLogger(__name__)


class MatchPosition(Enum):
    PREFIX = "prefix"
    SUFFIX = "suffix"
    CONTAINS = "contains"


@dataclass(frozen=True)
class MatchSpec:
    """Immutable pattern specification shared by all workers of a search."""
    pattern: str
    position: MatchPosition = MatchPosition.PREFIX
    case_sensitive: bool = False


def matches(address: str, spec: MatchSpec) -> bool:
    """Test if an address satisfies a match specification.

    Both sides are lowercased only for case-insensitive specs. An empty
    pattern matches every address.
    """
    pattern = spec.pattern
    if not spec.case_sensitive:
        address = address.lower()
        pattern = pattern.lower()

    if spec.position == MatchPosition.PREFIX:
        return address.startswith(pattern)
    elif spec.position == MatchPosition.SUFFIX:
        return address.endswith(pattern)
    elif spec.position == MatchPosition.CONTAINS:
        return pattern in address
    return False


def validate_pattern(pattern: str, case_sensitive: bool = False, allow_empty: bool = True) -> str:
    """Validate a pattern against the address alphabet.

    Returns the cleaned pattern (whitespace and any 0x prefix removed,
    lowercased unless case-sensitive).
    Raises InvalidSpecError for patterns that can never match.
    """
    cleaned = strip_prefix(pattern.strip())
    if not case_sensitive:
        cleaned = cleaned.lower()

    if not cleaned and not allow_empty:
        raise InvalidSpecError("Pattern cannot be empty.")

    invalid = sorted({c for c in cleaned if c not in ADDRESS_ALPHABET})
    if invalid:
        if case_sensitive and all(c.lower() in ADDRESS_ALPHABET for c in invalid):
            raise InvalidSpecError(
                f"Pattern '{pattern}' contains uppercase hex letters; addresses are "
                "lowercase hex, so a case-sensitive search could never match."
            )
        raise InvalidSpecError(
            f"Pattern '{pattern}' contains non-hex characters: {' '.join(invalid)}. "
            "Only 0-9 and a-f are valid."
        )

    if len(cleaned) > ADDRESS_HEX_LENGTH:
        logger.warning(
            "Pattern length %d exceeds the address length of %d hex chars; "
            "the search cannot succeed.",
            len(cleaned), ADDRESS_HEX_LENGTH,
        )
    return cleaned


def estimate_difficulty(spec: MatchSpec) -> dict:
    """Estimate expected attempts and time to find a match.

    Returns dict with: expected_attempts, estimated_seconds_per_core, difficulty_description
    """
    n = len(spec.pattern)
    if n > ADDRESS_HEX_LENGTH:
        return {
            "expected_attempts": None,
            "estimated_seconds_per_core": None,
            "difficulty_description": "Impossible (pattern longer than an address)",
        }

    # Addresses are lowercase hex: 16 symbols per position in either case mode.
    if spec.position == MatchPosition.CONTAINS:
        positions = ADDRESS_HEX_LENGTH - n + 1
        expected = max(1.0, (16 ** n) / positions)
    else:
        expected = 16 ** n

    keys_per_sec = 20000  # conservative single-core estimate
    secs = expected / keys_per_sec

    if expected < 100:
        desc = "Instant"
    elif expected < 100_000:
        desc = "Seconds"
    elif expected < 10_000_000:
        desc = "Minutes"
    elif expected < 1_000_000_000:
        desc = "Hours"
    elif expected < 100_000_000_000:
        desc = "Days"
    else:
        desc = "Weeks+ (consider a shorter pattern)"

    return {
        "expected_attempts": int(expected),
        "estimated_seconds_per_core": secs,
        "difficulty_description": desc,
    }
