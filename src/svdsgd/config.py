"""Run configuration for the training job.

Every knob of a run lives on :class:`SVDConfig`. Values come from keyword
arguments or from ``SVD_*`` environment variables (optionally loaded from a
``.env`` file), e.g. ``SVD_N_FEATURES=50`` or ``SVD_MODEL_TYPE=baseline``.
"""
import os
from pathlib import Path
from typing import Literal, Optional

from dotenv import find_dotenv, load_dotenv
from pydantic import BaseModel, ConfigDict, Field, ValidationError, model_validator

from svdsgd.exceptions import ConfigError

ENV_PREFIX = "SVD_"


class SVDConfig(BaseModel):
    model_config = ConfigDict(extra="forbid", frozen=True, protected_namespaces=())

    # --- model / optimisation -----------------------------------------
    model_type: Literal["svd", "baseline"] = "svd"
    n_features: int = Field(300, gt=0)
    total_iterations: int = Field(300_000_000, ge=0)
    learning_rate: float = Field(0.1, gt=0)
    seed: int = 1

    # --- sizes (fixed for the whole run) ------------------------------
    capacity: int = Field(100_000_000, gt=0)
    n_users: int = Field(500_000, gt=0)
    n_items: int = Field(20_000, gt=0)

    # --- inputs -------------------------------------------------------
    read_from_binary: bool = True
    ratings_table: Path = Path("data/learn.ssv")
    ratings_binary: Path = Path("train.bin")
    ratings_dump: Optional[Path] = Path("learn.bin")
    init_user_factors: Optional[Path] = None
    init_item_factors: Optional[Path] = None
    holdout_path: Path = Path("data/holdout.ssv")
    n_holdout: int = Field(1_500_000, gt=0)
    test_ids_path: Path = Path("data/test-ids.csv")

    # --- outputs ------------------------------------------------------
    submission_path: Path = Path("submission-float.csv")
    model_dir: Path = Path(".")

    # --- runtime ------------------------------------------------------
    eval_batch_size: int = Field(65_536, gt=0)
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = "INFO"

    @model_validator(mode="after")
    def _init_files_come_in_pairs(self) -> "SVDConfig":
        if (self.init_user_factors is None) != (self.init_item_factors is None):
            raise ValueError("init_user_factors and init_item_factors must be set together")
        return self

    @classmethod
    def from_env(cls, env_file: str | Path | None = None, **overrides) -> "SVDConfig":
        """Build a config from ``SVD_*`` environment variables.

        ``env_file`` (default: the nearest ``.env`` above the working
        directory) is loaded first, without overriding variables already set.
        Explicit keyword ``overrides`` win over the environment.
        """
        load_dotenv(env_file if env_file is not None else find_dotenv(usecwd=True))

        values: dict[str, object] = {}
        for name in cls.model_fields:
            raw = os.environ.get(f"{ENV_PREFIX}{name.upper()}")
            if raw is None:
                continue
            # an empty optional path means "unset"
            values[name] = None if raw == "" and name in _OPTIONAL_PATHS else raw
        values.update(overrides)

        try:
            return cls(**values)
        except ValidationError as err:
            raise ConfigError(f"Invalid configuration:\n{err}") from err


_OPTIONAL_PATHS = {"ratings_dump", "init_user_factors", "init_item_factors"}
