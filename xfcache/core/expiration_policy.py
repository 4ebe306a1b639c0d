"""Probabilistic early expiration (XFetch).

Decides whether a cached entry should be recomputed now even though it has not
reached its hard expiry. Each caller draws its own random sample, so callers
hitting the same entry near expiry recompute at different moments instead of
all at once.

The decision for a live entry with a finite expiry is::

    delta = compute_duration * beta * ln(sample)     # sample uniform in (0, 1], delta <= 0
    miss  = now - delta >= expires_at

Boundary behaviour:
    * beta == 0 never recomputes early.
    * beta == IMMEDIATE_EXPIRATION (math.inf) recomputes on every call.
    * larger beta or a costlier computation recomputes earlier.
    * compute_duration == 0 (unknown cost) never recomputes early.
"""

import logging
import math
import random
from typing import Optional, Union

from xfcache.domain.errors import InvalidBetaError
from xfcache.domain.models.entry import MISS, Entry, Hit, Lookup

logger = logging.getLogger(__name__)

DEFAULT_BETA = 1.0
IMMEDIATE_EXPIRATION = math.inf


class ExpirationPolicy:
    """XFetch early-expiration decision."""

    def __init__(self, default_beta: float = DEFAULT_BETA, rng: Optional[random.Random] = None):
        """Initializes the policy.

        Args:
            default_beta: Beta used when a caller passes None.
            rng: Source of uniform samples. A fresh per-process generator is
                created when omitted; tests may inject a seeded one.
        """
        self.default_beta = validate_beta(default_beta)
        self._rng = rng or random.Random()

    def _sample(self) -> float:
        # random() is in [0, 1); 1 - random() is in (0, 1] so log() is always defined.
        return 1.0 - self._rng.random()

    def should_treat_as_miss(
        self,
        lookup: Union[Lookup, Entry, None],
        now: float,
        beta: Optional[float] = None,
    ) -> bool:
        """Returns True when the caller should run the provider.

        Args:
            lookup: A store lookup (Hit/MISS), a bare Entry, or None for absent.
            now: Current unix time.
            beta: Early-expiration aggressiveness; None uses the default.

        Raises:
            InvalidBetaError: If beta is negative or NaN.
        """
        beta = self.default_beta if beta is None else validate_beta(beta)
        entry = _unwrap(lookup)
        if entry is None or entry.is_expired(now):
            return True
        if entry.expires_at is None:
            return False

        if beta == 0:
            return False
        if beta == IMMEDIATE_EXPIRATION:
            return True

        if entry.compute_duration <= 0:
            return False

        delta = entry.compute_duration * beta * math.log(self._sample())
        early = now - delta >= entry.expires_at
        if early:
            logger.debug(
                f"Early expiration triggered: {entry.expires_at - now:.3f}s before hard expiry "
                f"(beta={beta}, compute_duration={entry.compute_duration}s)"
            )
        return early


def validate_beta(beta: float) -> float:
    """Checks that beta is a non-negative number (math.inf allowed)."""
    if isinstance(beta, bool) or not isinstance(beta, (int, float)):
        raise InvalidBetaError(f"beta must be a number, got {beta!r}")
    beta = float(beta)
    if math.isnan(beta) or beta < 0:
        raise InvalidBetaError(f"beta must be >= 0, got {beta}")
    return beta


def _unwrap(lookup: Union[Lookup, Entry, None]) -> Optional[Entry]:
    if lookup is None or lookup is MISS:
        return None
    if isinstance(lookup, Hit):
        return lookup.entry
    return lookup
