"""
Tests for courier selection.
"""

import random
import uuid

from quickcart.services.delivery.selection import CourierSelector


class TestCourierSelector:
    def test_no_candidates(self):
        assert CourierSelector(seed=1).choose([]) is None

    def test_single_candidate(self):
        courier = uuid.uuid4()
        assert CourierSelector(seed=1).choose([courier]) == courier

    def test_choice_comes_from_candidates(self):
        candidates = [uuid.uuid4() for _ in range(5)]
        assert CourierSelector().choose(candidates) in candidates

    def test_seeded_selection_is_reproducible(self):
        candidates = [uuid.uuid4() for _ in range(8)]

        first = CourierSelector(seed=42).choose(candidates)
        second = CourierSelector(seed=42).choose(list(reversed(candidates)))

        assert first == second

    def test_duplicates_do_not_bias_selection(self):
        a, b = uuid.uuid4(), uuid.uuid4()

        left = CourierSelector(rng=random.Random(3)).choose([a, b])
        right = CourierSelector(rng=random.Random(3)).choose([a, a, a, b])

        assert left == right
