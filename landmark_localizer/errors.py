"""
Error types raised by the localization pipeline.

Only conditions that abort a whole call are exceptions. A cluster without a
corner triple, an observation without a valid identity or a solver that does
not converge degrade to fewer landmarks or an unchanged pose instead.
"""


class LocalizationError(Exception):
    """Base class for all pipeline errors."""


class InvalidInputError(LocalizationError):
    """Image is missing, empty or not a single 8-bit channel."""


class UnknownLandmarkError(LocalizationError):
    """Observation carries an identity that is not part of the map."""


class PointCountMismatchError(LocalizationError):
    """Observed point count differs from the map entry of that identity."""

    def __init__(self, identity: int, observed: int, expected: int):
        super().__init__(
            f"point count does not match for landmark {identity}: "
            f"{observed} (observed) vs. {expected} (map)"
        )
        self.identity = identity
        self.observed = observed
        self.expected = expected
