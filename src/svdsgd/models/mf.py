"""Module containing the Matrix Factorization (MF) predictor and the shared rating clip."""
import numpy as np
import torch
import torch.nn as nn

from svdsgd.models.factors import FactorTable

# Valid rating range of the dataset. Every prediction, in training and at
# inference, is clipped into it.
RATING_MIN = 1.0
RATING_MAX = 5.0


def clip_rating(x):
    """Clip a float or a tensor of raw scores into ``[RATING_MIN, RATING_MAX]``."""
    if isinstance(x, torch.Tensor):
        return x.clamp(RATING_MIN, RATING_MAX)
    return min(max(float(x), RATING_MIN), RATING_MAX)


def predict_rating(user_row: np.ndarray | torch.Tensor, item_row: np.ndarray | torch.Tensor) -> float:
    """Clipped dot product of one user row and one item row, over all features."""
    if isinstance(user_row, torch.Tensor):
        return clip_rating(torch.dot(user_row, item_row).item())
    return clip_rating(np.dot(user_row, item_row))


class MatrixFactorization(nn.Module):
    """
    Plain latent-factor model for explicit ratings: ``clip(p_u · q_i)``.

    No biases, no global mean. The two factor tables are registered as
    buffers (not parameters: training is a hand-written SGD loop, not
    autograd), and they are the *same* tensors the tables own, so in-place
    updates through either side are visible to both.

    Attributes:
        user_factors (FactorTable): One row per user id.
        item_factors (FactorTable): One row per item id.
    """
    def __init__(self, user_factors: FactorTable, item_factors: FactorTable) -> None:
        super().__init__()
        self.user_factors = user_factors
        self.item_factors = item_factors
        self.register_buffer("user_emb", user_factors.weight, persistent=True)
        self.register_buffer("item_emb", item_factors.weight, persistent=True)

    @property
    def n_features(self) -> int:
        return self.user_factors.n_features

    @property
    def n_users(self) -> int:
        return self.user_factors.capacity

    @property
    def n_items(self) -> int:
        return self.item_factors.capacity

    def predict(self, user: int, item: int) -> float:
        """Score a single pair through the shared scalar primitive."""
        return predict_rating(self.user_factors.get_row(user), self.item_factors.get_row(item))

    def forward(self, users: torch.Tensor, items: torch.Tensor) -> torch.Tensor:
        """Batched ``predict``: same dot product, same clip."""
        dot = (self.user_emb[users] * self.item_emb[items]).sum(1)  # User - Item interactions
        return clip_rating(dot)


if __name__ == "__main__":
    model = MatrixFactorization(FactorTable(100, 32), FactorTable(200, 32))

    def count_entries(model):
        total = sum(b.numel() for b in model.buffers())
        print(f"Total factor entries: {total}")
        for name, buf in model.named_buffers():
            print(f"{name}: {buf.shape} → {buf.numel()} entries")

    print(model)
    count_entries(model)
