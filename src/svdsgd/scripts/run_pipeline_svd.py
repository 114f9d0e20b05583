import time
from datetime import datetime
from pathlib import Path

from svdsgd.config import SVDConfig
from svdsgd.data.ratings import RatingStore
from svdsgd.data.readers import iter_holdout, iter_test_ids
from svdsgd.engine.inference import predict_test_ids, write_submission
from svdsgd.engine.metrics import evaluate_mse
from svdsgd.engine.trainer import fit_baseline, train_svd
from svdsgd.models.baseline import BaselineModel
from svdsgd.models.factors import FactorTable
from svdsgd.models.mf import MatrixFactorization
from svdsgd.utils.logger import set_package_level, setup_logger


logger = setup_logger(__name__)


def model_filenames(now: datetime | None = None) -> tuple[str, str]:
    """Timestamped names for the user and item factor files, e.g. ``20161217140707-uv.bin``."""
    now = now or datetime.now()
    return now.strftime("%Y%m%d%H%M%S-uv.bin"), now.strftime("%Y%m%d%H%M%S-iv.bin")


def build_factor_tables(cfg: SVDConfig) -> tuple[FactorTable, FactorTable]:
    """Constant ``1/sqrt(K)`` tables, or tables restored from a previous run."""
    user_factors = FactorTable(cfg.n_users, cfg.n_features)
    item_factors = FactorTable(cfg.n_items, cfg.n_features)
    if cfg.init_user_factors is not None:
        logger.info(f"Restoring factors from {cfg.init_user_factors} and {cfg.init_item_factors}")
        user_factors.load(cfg.init_user_factors)
        item_factors.load(cfg.init_item_factors)
    return user_factors, item_factors


def load_ratings(cfg: SVDConfig) -> RatingStore:
    if cfg.read_from_binary:
        return RatingStore.load_binary(cfg.ratings_binary, cfg.capacity)

    store = RatingStore.load_table(cfg.ratings_table, cfg.capacity)
    if cfg.ratings_dump is not None:
        store.dump_binary(cfg.ratings_dump)
    return store


def run_pipeline(cfg: SVDConfig, *, show_progress: bool = True):
    """End‑to‑end run: init tables → load ratings → train → holdout MSE → submission → save.

    Parameters
    ----------
    cfg : SVDConfig
        Run configuration (sizes, hyper‑parameters, file locations).
    show_progress : bool, optional
        Draw tqdm bars for training and evaluation, by default True.

    Returns
    -------
    model : MatrixFactorization | BaselineModel
        Trained model.
    metrics : dict[str, object]
        ``train_seconds``, ``mse`` (None when the holdout file is absent),
        ``n_predictions`` (None when the test-id file is absent) and the saved
        ``user_factors_path`` / ``item_factors_path`` (None for the baseline).
    """
    set_package_level(cfg.log_level)
    metrics: dict[str, object] = {
        "mse": None,
        "n_predictions": None,
        "user_factors_path": None,
        "item_factors_path": None,
    }

    # --- 1. Model ------------------------------------------------------------
    logger.info("Start initializing...")
    if cfg.model_type == "svd":
        model = MatrixFactorization(*build_factor_tables(cfg))
    else:
        model = BaselineModel(cfg.n_users, cfg.n_items)
    logger.info("OK")

    # --- 2. Ratings ----------------------------------------------------------
    logger.info("Start reading dataset...")
    store = load_ratings(cfg)
    logger.info(f"OK, {store!r}")

    # --- 3. Training ---------------------------------------------------------
    logger.info("Start training...")
    begin = time.perf_counter()
    if isinstance(model, MatrixFactorization):
        train_svd(
            model,
            store,
            total_iterations=cfg.total_iterations,
            lr=cfg.learning_rate,
            seed=cfg.seed,
            show_progress=show_progress,
        )
    else:
        fit_baseline(model, store)
    metrics["train_seconds"] = time.perf_counter() - begin
    logger.info(f"OK, time elapsed: {metrics['train_seconds']:.1f}s")

    # --- 4. Holdout MSE ------------------------------------------------------
    if Path(cfg.holdout_path).is_file():
        logger.info("Start calculating hold-out MSE...")
        metrics["mse"] = evaluate_mse(
            model,
            iter_holdout(cfg.holdout_path),
            cfg.n_holdout,
            batch_size=cfg.eval_batch_size,
            show_progress=show_progress,
        )
        logger.info(f"OK, MSE = {metrics['mse']:.6f}")
    else:
        logger.warning(f"Holdout file {cfg.holdout_path} not found, skipping MSE")

    # --- 5. Submission -------------------------------------------------------
    if Path(cfg.test_ids_path).is_file():
        logger.info("Start filling out submission...")
        metrics["n_predictions"] = write_submission(
            cfg.submission_path,
            predict_test_ids(model, iter_test_ids(cfg.test_ids_path)),
        )
        logger.info("OK")
    else:
        logger.warning(f"Test-id file {cfg.test_ids_path} not found, skipping submission")

    # --- 6. Persist factors --------------------------------------------------
    if isinstance(model, MatrixFactorization):
        logger.info("Start saving model...")
        model_dir = Path(cfg.model_dir)
        model_dir.mkdir(parents=True, exist_ok=True)
        uv_name, iv_name = model_filenames()
        metrics["user_factors_path"] = model_dir / uv_name
        metrics["item_factors_path"] = model_dir / iv_name
        model.user_factors.save(metrics["user_factors_path"])
        model.item_factors.save(metrics["item_factors_path"])
        logger.info(f"OK, saved {uv_name} and {iv_name} to {model_dir}")

    return model, metrics
