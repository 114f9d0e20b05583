"""Mean-offset baseline: a shrunk item mean plus a shrunk user offset.

    r_hat(u, i) = (mu * K + S_i) / (K + n_i) + (mu_off * K + O_u) / (K + m_u)

where ``S_i``/``n_i`` are the rating sum/count of item ``i``, ``O_u``/``m_u``
the sum/count of user ``u``'s offsets ``r - mean_i`` and ``mu``/``mu_off``
the global means of ratings and offsets. ``K`` pulls rarely rated items and
users towards the global means.
"""
import torch
import torch.nn as nn

from svdsgd.models.mf import clip_rating

K_MEAN = 2.0


class BaselineModel(nn.Module):
    """Same ``predict``/``forward`` surface as :class:`MatrixFactorization`."""

    def __init__(self, n_users: int, n_items: int) -> None:
        super().__init__()
        self.n_users = n_users
        self.n_items = n_items

        self.register_buffer("sum_rating", torch.zeros(n_items, dtype=torch.float64))
        self.register_buffer("cnt_rating", torch.zeros(n_items, dtype=torch.float64))
        self.register_buffer("sum_offset", torch.zeros(n_users, dtype=torch.float64))
        self.register_buffer("cnt_offset", torch.zeros(n_users, dtype=torch.float64))
        self.global_rating_mean = 0.0
        self.global_offset_mean = 0.0
        self.fitted = False

    def fit(self, users: torch.Tensor, items: torch.Tensor, ratings: torch.Tensor) -> "BaselineModel":
        """Two passes: item statistics first, then user offsets against the final item means."""
        users = users.long()
        items = items.long()
        ratings = ratings.double()

        self.sum_rating.zero_().index_add_(0, items, ratings)
        self.cnt_rating.zero_().index_add_(0, items, torch.ones_like(ratings))
        self.global_rating_mean = float(ratings.mean())

        offsets = ratings - self.sum_rating[items] / self.cnt_rating[items]
        self.sum_offset.zero_().index_add_(0, users, offsets)
        self.cnt_offset.zero_().index_add_(0, users, torch.ones_like(offsets))
        self.global_offset_mean = float(offsets.mean())

        self.fitted = True
        return self

    def _raw(self, users: torch.Tensor, items: torch.Tensor) -> torch.Tensor:
        item_part = (self.global_rating_mean * K_MEAN + self.sum_rating[items]) / (K_MEAN + self.cnt_rating[items])
        user_part = (self.global_offset_mean * K_MEAN + self.sum_offset[users]) / (K_MEAN + self.cnt_offset[users])
        return item_part + user_part

    def predict(self, user: int, item: int) -> float:
        raw = self._raw(torch.tensor(user), torch.tensor(item))
        return clip_rating(float(raw))

    def forward(self, users: torch.Tensor, items: torch.Tensor) -> torch.Tensor:
        return clip_rating(self._raw(users, items)).float()
