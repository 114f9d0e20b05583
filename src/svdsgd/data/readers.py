"""Readers for the flat text files the job consumes.

All three inputs share one shape: a single header line followed by rows of
numbers separated by whitespace or commas. A leading row-id column may be
present; only the trailing columns named by the caller are kept.

    learn.ssv / holdout.ssv   [row_id] user item rating
    test-ids.csv              id user item   (read line by line, see iter_test_ids)
"""
import re
from pathlib import Path
from typing import Iterator

import numpy as np
import pandas as pd

from svdsgd.exceptions import FormatError
from svdsgd.utils.logger import setup_logger

logger = setup_logger(__name__)

SEPARATOR = r"[\s,]+"
_SPLIT = re.compile(SEPARATOR)
DEFAULT_CHUNKSIZE = 1_000_000

RATING_COLUMNS = ("user", "item", "rating")


def read_table_chunks(
    path: str | Path,
    columns: tuple[str, ...],
    *,
    dtype: type = np.int64,
    chunksize: int = DEFAULT_CHUNKSIZE,
) -> Iterator[pd.DataFrame]:
    """Yield the file in chunks of at most *chunksize* rows.

    Each chunk has exactly *columns*, taken from the right-hand end of every
    row and cast to *dtype*. Missing files raise ``FileNotFoundError``; rows
    that are ragged, too short or non-numeric raise :class:`FormatError`.
    """
    path = Path(path)
    if not path.is_file():
        raise FileNotFoundError(f"No such file: {path}")

    try:
        reader = pd.read_csv(
            path,
            sep=SEPARATOR,
            engine="python",
            header=None,
            skiprows=1,
            dtype=str,
            chunksize=chunksize,
        )
    except pd.errors.EmptyDataError:
        return

    with reader:
        line_offset = 2  # 1-based, after the header
        while True:
            try:
                chunk = next(reader)
            except StopIteration:
                return
            except pd.errors.EmptyDataError:
                return
            except pd.errors.ParserError as err:
                raise FormatError(f"{path}: {err}") from err

            yield _coerce(chunk, columns, dtype, path, line_offset)
            line_offset += len(chunk)


def _coerce(
    chunk: pd.DataFrame,
    columns: tuple[str, ...],
    dtype: type,
    path: Path,
    line_offset: int,
) -> pd.DataFrame:
    # regex separators leave an empty leading field for indented rows
    chunk = chunk.dropna(axis=1, how="all")
    if chunk.shape[1] < len(columns):
        raise FormatError(
            f"{path}:{line_offset}: expected at least {len(columns)} columns, got {chunk.shape[1]}"
        )

    tail = chunk.iloc[:, -len(columns):].set_axis(list(columns), axis=1)
    try:
        numeric = tail.apply(pd.to_numeric, errors="raise")
        # astype would truncate 2.7 to 2
        if np.issubdtype(dtype, np.integer) and (numeric % 1 != 0).to_numpy().any():
            raise ValueError(f"non-integer value in one of the columns {list(columns)}")
        return numeric.astype(dtype)
    except (ValueError, TypeError) as err:
        raise FormatError(f"{path}: malformed row near line {line_offset}: {err}") from err


def iter_ratings(path: str | Path, *, chunksize: int = DEFAULT_CHUNKSIZE) -> Iterator[pd.DataFrame]:
    """Training ratings as integer ``user, item, rating`` chunks."""
    return read_table_chunks(path, RATING_COLUMNS, dtype=np.int64, chunksize=chunksize)


def iter_holdout(path: str | Path, *, chunksize: int = DEFAULT_CHUNKSIZE) -> Iterator[tuple[int, int, float]]:
    """Holdout ``(user, item, true_rating)`` triples, one at a time."""
    for chunk in read_table_chunks(path, RATING_COLUMNS, dtype=np.float64, chunksize=chunksize):
        for user, item, rating in chunk.itertuples(index=False, name=None):
            yield int(user), int(item), float(rating)


def iter_test_ids(path: str | Path) -> Iterator[tuple[int, int, int]]:
    """Submission ``(id, user, item)`` triples in file order.

    Test-id files may carry trailing junk after the last real row, so they
    are read line by line. The first row that is not exactly three integers
    ends the stream, the same way a gap in the ids does.
    """
    path = Path(path)
    with path.open("r") as f:
        next(f, None)  # header
        for line_no, line in enumerate(f, start=2):
            fields = [field for field in _SPLIT.split(line.strip()) if field]
            try:
                # a wrong field count fails the unpacking with ValueError too
                test_id, user, item = (int(field) for field in fields)
            except ValueError as err:
                logger.info(f"{path}:{line_no}: end of test ids ({err})")
                return
            yield test_id, user, item
