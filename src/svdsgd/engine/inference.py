"""Submission predictions for the ``(id, user, item)`` test file."""
from pathlib import Path
from typing import Iterable, Iterator

import pandas as pd
import torch

from svdsgd.engine.metrics import check_id_range
from svdsgd.models.baseline import BaselineModel
from svdsgd.models.mf import MatrixFactorization
from svdsgd.utils.logger import setup_logger

logger = setup_logger(__name__)

SUBMISSION_COLUMNS = ["Id", "Prediction"]


def predict_test_ids(
    model: MatrixFactorization | BaselineModel,
    triples: Iterable[tuple[int, int, int]],
) -> Iterator[tuple[int, float]]:
    """Yield ``(id, prediction)`` while ids run 1, 2, 3, ... without gaps.

    The first id that breaks the sequence ends the stream. That is the normal
    stop condition for a test file with trailing junk, not an error, so the
    partial output is kept. A user or item outside the tables raises
    :class:`FormatError`.
    """
    expected = 1
    with torch.no_grad():
        for test_id, user, item in triples:
            if test_id != expected:
                logger.info(f"Test id sequence broke at position {expected}: got id {test_id}, stopping")
                return
            check_id_range(model, (int(user),), (int(item),), source=f"Test id {test_id}")
            yield int(test_id), model.predict(int(user), int(item))
            expected += 1


def write_submission(path: str | Path, predictions: Iterable[tuple[int, float]]) -> int:
    """Write ``Id,Prediction`` rows and return how many were written."""
    path = Path(path)
    submission = pd.DataFrame(list(predictions), columns=SUBMISSION_COLUMNS)
    submission["Id"] = submission["Id"].astype("int64")
    submission.to_csv(path, index=False, float_format="%.6f")
    logger.info(f"Submission with {len(submission):,} predictions written to {path}")
    return len(submission)
