"""Dense latent-factor tables, one row of ``n_features`` floats per entity."""
import math
from pathlib import Path

import numpy as np
import torch

from svdsgd.exceptions import FormatError

# Raw files are headerless row-major little-endian float32.
FILE_DTYPE = np.dtype("<f4")


class FactorTable:
    """
    ``capacity x n_features`` float32 table indexed by user or item id.

    The table is fully initialized on construction (constant policy), so every
    row is readable before training or loading touches it. ``weight`` is the
    backing tensor; ``as_numpy()`` shares its memory.

    Attributes:
        weight (torch.Tensor): Factor values, shape ``(capacity, n_features)``.
    """

    def __init__(self, capacity: int, n_features: int = 300, *, init_value: float | None = None) -> None:
        if capacity <= 0 or n_features <= 0:
            raise ValueError(f"table shape must be positive, got ({capacity}, {n_features})")
        self.weight = torch.empty((capacity, n_features), dtype=torch.float32)
        self.initialize_constant(init_value)

    @property
    def capacity(self) -> int:
        return self.weight.shape[0]

    @property
    def n_features(self) -> int:
        return self.weight.shape[1]

    @property
    def nbytes(self) -> int:
        return self.capacity * self.n_features * FILE_DTYPE.itemsize

    def __repr__(self) -> str:
        return f"FactorTable(capacity={self.capacity:,}, n_features={self.n_features})"

    def default_value(self) -> float:
        """``1/sqrt(K)``: a constant row then has unit norm and ``dot = 1`` for any pair."""
        return 1.0 / math.sqrt(self.n_features)

    def initialize_constant(self, value: float | None = None) -> None:
        self.weight.fill_(self.default_value() if value is None else value)

    def get_row(self, entity_id: int) -> torch.Tensor:
        """Mutable view of one entity's factors."""
        if not 0 <= entity_id < self.capacity:
            raise IndexError(f"entity id {entity_id} out of range [0, {self.capacity})")
        return self.weight[entity_id]

    def as_numpy(self) -> np.ndarray:
        return self.weight.numpy()

    def load(self, path: str | Path) -> None:
        """Overwrite the table in place from a raw block of exactly ``nbytes``."""
        path = Path(path)
        size = path.stat().st_size
        if size != self.nbytes:
            raise FormatError(
                f"{path}: expected {self.nbytes:,} bytes for a "
                f"{self.capacity:,} x {self.n_features} float32 table, found {size:,}"
            )
        values = np.fromfile(path, dtype=FILE_DTYPE).reshape(self.capacity, self.n_features)
        # copy_ keeps the tensor object, so models holding it see the new values
        self.weight.copy_(torch.from_numpy(values))

    def save(self, path: str | Path) -> None:
        self.as_numpy().astype(FILE_DTYPE, copy=False).tofile(Path(path))
