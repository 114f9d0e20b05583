from __future__ import annotations

import os
from pathlib import Path

import pytest
from pydantic import ValidationError

from svdsgd.config import SVDConfig
from svdsgd.exceptions import ConfigError


@pytest.fixture(autouse=True)
def clean_env(monkeypatch: pytest.MonkeyPatch, tmp_path):
    for name in list(os.environ):
        if name.startswith("SVD_"):
            monkeypatch.delenv(name)
    # keep any developer .env out of the tests
    monkeypatch.chdir(tmp_path)
    yield
    # values loaded from .env files are not tracked by monkeypatch
    for name in list(os.environ):
        if name.startswith("SVD_"):
            del os.environ[name]


def test_defaults_follow_the_reference_run() -> None:
    cfg = SVDConfig()

    assert cfg.n_features == 300
    assert cfg.total_iterations == 300_000_000
    assert cfg.learning_rate == pytest.approx(0.1)
    assert (cfg.n_users, cfg.n_items, cfg.capacity) == (500_000, 20_000, 100_000_000)
    assert cfg.n_holdout == 1_500_000
    assert cfg.model_type == "svd"
    assert cfg.init_user_factors is None


def test_environment_values_are_parsed(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("SVD_N_FEATURES", "50")
    monkeypatch.setenv("SVD_LEARNING_RATE", "0.02")
    monkeypatch.setenv("SVD_READ_FROM_BINARY", "false")
    monkeypatch.setenv("SVD_MODEL_TYPE", "baseline")
    monkeypatch.setenv("SVD_RATINGS_DUMP", "")

    cfg = SVDConfig.from_env()

    assert cfg.n_features == 50
    assert cfg.learning_rate == pytest.approx(0.02)
    assert cfg.read_from_binary is False
    assert cfg.model_type == "baseline"
    assert cfg.ratings_dump is None


def test_env_file_and_overrides(tmp_path) -> None:
    env_file = tmp_path / "run.env"
    env_file.write_text("SVD_N_USERS=10\nSVD_N_ITEMS=20\n")

    cfg = SVDConfig.from_env(env_file, n_items=30)

    assert cfg.n_users == 10
    assert cfg.n_items == 30


@pytest.mark.parametrize(
    "name, value",
    [("SVD_N_FEATURES", "0"), ("SVD_LEARNING_RATE", "-1"), ("SVD_MODEL_TYPE", "als"), ("SVD_CAPACITY", "lots")],
)
def test_invalid_values_raise_config_error(monkeypatch: pytest.MonkeyPatch, name: str, value: str) -> None:
    monkeypatch.setenv(name, value)

    with pytest.raises(ConfigError):
        SVDConfig.from_env()


def test_init_factor_files_must_be_paired() -> None:
    with pytest.raises(ValidationError):
        SVDConfig(init_user_factors=Path("uv.bin"))

    cfg = SVDConfig(init_user_factors=Path("uv.bin"), init_item_factors=Path("iv.bin"))
    assert cfg.init_item_factors == Path("iv.bin")


def test_unknown_fields_are_rejected() -> None:
    with pytest.raises(ValidationError):
        SVDConfig(n_factors=10)
