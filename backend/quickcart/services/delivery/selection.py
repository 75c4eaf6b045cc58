"""
Courier selection.

The eligible set comes from the repository's eligibility query; this module
only picks from it. Candidates are sorted before the draw so that a seeded
generator always yields the same courier for the same set.
"""

import random
import uuid
from typing import Iterable, Optional


class CourierSelector:
    """
    Uniform random pick among eligible couriers.

    Args:
        rng: Generator to draw from. Pass ``random.Random(seed)`` for
            reproducible selection.
        seed: Convenience seed used when ``rng`` is not given
    """

    def __init__(
        self,
        rng: Optional[random.Random] = None,
        seed: Optional[int] = None,
    ):
        self.rng = rng or random.Random(seed)

    def choose(self, candidates: Iterable[uuid.UUID]) -> Optional[uuid.UUID]:
        """
        Pick one courier, or None when nobody is eligible.
        """
        pool = sorted(set(candidates), key=str)
        if not pool:
            return None
        return self.rng.choice(pool)
