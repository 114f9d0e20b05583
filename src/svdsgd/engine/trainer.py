import math

import numpy as np
import torch
from tqdm.auto import tqdm

from svdsgd.data.ratings import RatingStore
from svdsgd.exceptions import InvalidState
from svdsgd.models.baseline import BaselineModel
from svdsgd.models.mf import MatrixFactorization, predict_rating
from svdsgd.utils.logger import setup_logger

logger = setup_logger(__name__)

SAMPLE_CHUNK = 1_000_000


def iterations_for_feature(feature: int, total_iterations: int) -> int:
    """Annealed budget of feature *feature*: ``ceil(total / sqrt(feature + 1))``.

    Non-increasing in *feature*, so the first (most influential) dimensions get
    the most SGD steps.
    """
    if feature < 0:
        raise ValueError(f"feature index must be >= 0, got {feature}")
    return math.ceil(total_iterations / math.sqrt(feature + 1))


def total_sgd_steps(n_features: int, total_iterations: int) -> int:
    """Number of SGD steps a full run performs, summed over all features."""
    return sum(iterations_for_feature(t, total_iterations) for t in range(n_features))


def sgd_step(
    user_vec: np.ndarray,
    item_vec: np.ndarray,
    user: int,
    item: int,
    rating: float,
    feature: int,
    lr: float,
) -> float:
    """One SGD update of coordinate *feature* for a single ``(user, item, rating)``.

    The prediction uses the full current rows. Both coordinates move from the
    same pre-step snapshot: the item update uses the user value from *before*
    the user update. Returns the prediction the error was computed from.
    """
    user_row = user_vec[user]
    item_row = item_vec[item]

    rating_pred = predict_rating(user_row, item_row)
    err = lr * (rating - rating_pred)

    uv = user_row[feature]  # numpy scalar, a copy
    user_row[feature] += err * item_row[feature]
    item_row[feature] += err * uv
    return rating_pred


def check_training_state(
    model: MatrixFactorization | BaselineModel,
    store: RatingStore,
    *,
    total_iterations: int = 0,
    lr: float = 1.0,
) -> None:
    """Raise :class:`InvalidState` unless *model* can be trained on *store* as is."""
    if store.count == 0:
        raise InvalidState("Rating store is empty, nothing to train on")
    if total_iterations < 0:
        raise InvalidState(f"total_iterations must be >= 0, got {total_iterations}")
    if not (lr > 0 and math.isfinite(lr)):
        raise InvalidState(f"learning rate must be a positive finite number, got {lr}")

    if isinstance(model, MatrixFactorization):
        if model.user_factors.n_features != model.item_factors.n_features:
            raise InvalidState(
                f"Factor tables disagree on feature count: users have "
                f"{model.user_factors.n_features}, items have {model.item_factors.n_features}"
            )

    n_users, n_items = model.n_users, model.n_items
    max_user = int(store.users.max())
    max_item = int(store.items.max())
    if max_user >= n_users:
        raise InvalidState(f"Ratings reference user {max_user}, user table holds {n_users:,} rows")
    if max_item >= n_items:
        raise InvalidState(f"Ratings reference item {max_item}, item table holds {n_items:,} rows")


def train_svd(
    model: MatrixFactorization,
    store: RatingStore,
    *,
    total_iterations: int,
    lr: float = 0.1,
    seed: int = 1,
    show_progress: bool = True,
) -> MatrixFactorization:
    """
    Train *model* in place with per-feature annealed SGD.

    Features are visited once, in increasing order. For feature ``t`` the loop
    draws ``iterations_for_feature(t, total_iterations)`` rows uniformly with
    replacement and applies :func:`sgd_step` to coordinate ``t`` of the rows'
    user and item vectors. Predictions always use the full-length vectors, so
    feature ``t`` fits the residual left by features ``< t`` while features
    ``> t`` still hold their initial values.
    """
    check_training_state(model, store, total_iterations=total_iterations, lr=lr)

    rng = np.random.default_rng(seed)
    # shared-memory views: writes land directly in the factor tensors
    user_vec = model.user_factors.as_numpy()
    item_vec = model.item_factors.as_numpy()
    n_features = model.n_features

    logger.info(
        f"SGD: ratings = {store.count:,} | features = {n_features} | "
        f"total_iterations = {total_iterations:,} | lr = {lr} | "
        f"total steps = {total_sgd_steps(n_features, total_iterations):,}"
    )

    for feature in tqdm(
        range(n_features),
        desc="Training",
        unit="feature",
        disable=not show_progress,
        bar_format="{l_bar}{bar:30} | {n_fmt}/{total_fmt} [{elapsed}<{remaining}, {rate_fmt}]",
    ):
        n_iter = iterations_for_feature(feature, total_iterations)
        sq_err = 0.0
        done = 0

        # ── draw indices in chunks so a 300M-step feature never materialises at once ──
        while done < n_iter:
            idx = store.sample_indices(rng, min(SAMPLE_CHUNK, n_iter - done))
            for user, item, rating in zip(
                store.users[idx].tolist(),
                store.items[idx].tolist(),
                store.ratings[idx].tolist(),
            ):
                rating_pred = sgd_step(user_vec, item_vec, user, item, rating, feature, lr)
                sq_err += (rating - rating_pred) ** 2
            done += len(idx)

        sampled_mse = sq_err / n_iter if n_iter else float("nan")
        logger.info(f"Feature {feature + 1}/{n_features} | iterations = {n_iter:,} | sampled MSE = {sampled_mse:.4f}")

    return model


def fit_baseline(model: BaselineModel, store: RatingStore) -> BaselineModel:
    """Fill the baseline's item/user statistics from every row of *store*."""
    check_training_state(model, store)
    logger.info(f"Baseline: accumulating statistics over {store.count:,} ratings")
    return model.fit(
        torch.from_numpy(store.users.astype(np.int64)),
        torch.from_numpy(store.items.astype(np.int64)),
        torch.from_numpy(store.ratings.astype(np.float64)),
    )
