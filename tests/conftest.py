from __future__ import annotations

import numpy as np
import pytest

from svdsgd.data.ratings import RatingStore
from svdsgd.models.factors import FactorTable
from svdsgd.models.mf import MatrixFactorization


def make_synthetic_ratings(
    n_users: int = 12,
    n_items: int = 8,
    *,
    rank: int = 2,
    seed: int = 0,
) -> list[tuple[int, int, int]]:
    """Every (user, item) pair rated from a low-rank ground truth, rounded into 1..5."""
    rng = np.random.default_rng(seed)
    p = rng.uniform(0.8, 1.6, size=(n_users, rank))
    q = rng.uniform(0.8, 1.6, size=(n_items, rank))
    truth = np.clip(np.rint(p @ q.T), 1, 5).astype(int)
    return [(u, i, int(truth[u, i])) for u in range(n_users) for i in range(n_items)]


@pytest.fixture
def synthetic_ratings() -> list[tuple[int, int, int]]:
    return make_synthetic_ratings()


@pytest.fixture
def store(synthetic_ratings: list[tuple[int, int, int]]) -> RatingStore:
    return RatingStore.from_records(synthetic_ratings, capacity=len(synthetic_ratings) + 4)


@pytest.fixture
def model() -> MatrixFactorization:
    return MatrixFactorization(FactorTable(12, 4), FactorTable(8, 4))
