"""Exception types raised by fuelvanity."""


class FuelVanityError(Exception):
    """Base class for all fuelvanity errors."""


class InvalidSpecError(FuelVanityError, ValueError):
    """The match specification can never be satisfied or is malformed.

    Raised before any worker is started, so no search state exists yet.
    """


class DerivationError(FuelVanityError, ValueError):
    """The address deriver rejected a secret key."""


class SearchError(FuelVanityError, RuntimeError):
    """Every worker exited without producing a result."""
