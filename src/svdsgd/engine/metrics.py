import itertools
from typing import Iterable, Sequence

import torch
from tqdm.auto import tqdm

from svdsgd.exceptions import FormatError
from svdsgd.models.baseline import BaselineModel
from svdsgd.models.mf import MatrixFactorization
from svdsgd.utils.logger import setup_logger

logger = setup_logger(__name__)


def check_id_range(
    model: MatrixFactorization | BaselineModel,
    users: Sequence[int],
    items: Sequence[int],
    source: str = "Input",
) -> None:
    """Raise :class:`FormatError` if any id falls outside the model's tables."""
    for name, ids, size in (("user", users, model.n_users), ("item", items, model.n_items)):
        low, high = min(ids), max(ids)
        if low < 0 or high >= size:
            bad = low if low < 0 else high
            raise FormatError(f"{source} references {name} {bad}, {name} table holds {size:,} rows")


def evaluate_mse(
    model: MatrixFactorization | BaselineModel,
    records: Iterable[tuple[int, int, float]],
    n_records: int,
    *,
    batch_size: int = 65_536,
    show_progress: bool = True,
) -> float:
    """Holdout MSE over the first *n_records* ``(user, item, true_rating)`` triples.

    Predictions come from the model's batched forward (the clipped predictor)
    in chunks of *batch_size*. The error is accumulated as a running average,
    ``mse += (1 / n) * (true - pred)**2`` per record in source order, so no
    large sum is ever formed. The model is only read.

    Raises :class:`FormatError` when *records* runs out before *n_records* or
    references a user or item the tables do not hold.
    """
    if n_records <= 0:
        raise ValueError(f"n_records must be positive, got {n_records}")

    ninv = 1.0 / n_records
    mse = 0.0
    seen = 0
    model.eval()

    uid_batch: list[int] = []
    iid_batch: list[int] = []
    true_batch: list[float] = []

    def _flush():
        """Score the buffered pairs in one forward pass and fold them into the running MSE."""
        nonlocal mse
        if not uid_batch:
            return

        check_id_range(model, uid_batch, iid_batch, source="Holdout")
        users_t = torch.as_tensor(uid_batch, dtype=torch.long)
        items_t = torch.as_tensor(iid_batch, dtype=torch.long)
        preds = model(users_t, items_t).tolist()
        for rating_true, rating_pred in zip(true_batch, preds):
            mse += ninv * (rating_true - rating_pred) * (rating_true - rating_pred)

        # clear buffers
        uid_batch.clear(); iid_batch.clear(); true_batch.clear()

    with torch.no_grad():
        for user, item, rating_true in tqdm(
            itertools.islice(records, n_records),
            total=n_records,
            desc="Evaluating",
            unit="rating",
            disable=not show_progress,
            bar_format="{l_bar}{bar:30} | {n_fmt}/{total_fmt} [{elapsed}<{remaining}, {rate_fmt}]",
        ):
            uid_batch.append(int(user))
            iid_batch.append(int(item))
            true_batch.append(float(rating_true))
            seen += 1

            if len(uid_batch) >= batch_size:
                _flush()

        _flush()   # leftover records

    if seen < n_records:
        raise FormatError(f"Holdout source ended after {seen:,} of {n_records:,} records")

    logger.info(f"Holdout MSE over {n_records:,} ratings = {mse:.6f}")
    return mse
