"""In-memory training set: a fixed-capacity block of ``(user, item, rating)`` rows."""
import itertools
from pathlib import Path
from typing import Iterable, NamedTuple

import numpy as np
import pandas as pd

from svdsgd.data.readers import iter_ratings
from svdsgd.exceptions import CapacityExceeded, FormatError
from svdsgd.utils.logger import setup_logger

logger = setup_logger(__name__)

# On-disk and in-memory layout are the same: little-endian int32 triples.
RATING_DTYPE = np.dtype([("user", "<i4"), ("item", "<i4"), ("rating", "<i4")])
COUNT_DTYPE = np.dtype("<i4")
_INT32_MIN = np.iinfo(np.int32).min
_INT32_MAX = np.iinfo(np.int32).max


class Rating(NamedTuple):
    user: int
    item: int
    rating: int


class RatingStore:
    """Fixed-capacity table of ratings plus the number of valid rows.

    Rows at positions ``>= count`` are never read. Builders (``from_records``,
    ``from_frames``, ``load_table``, ``load_binary``) fill a fresh store and only
    return it once the whole source fits, so a failed load leaves nothing
    half-populated behind.
    """

    def __init__(self, capacity: int) -> None:
        if capacity <= 0:
            raise ValueError(f"capacity must be positive, got {capacity}")
        self.capacity = int(capacity)
        self.rows = np.zeros(self.capacity, dtype=RATING_DTYPE)
        self.count = 0

    def __len__(self) -> int:
        return self.count

    def __repr__(self) -> str:
        return f"RatingStore(count={self.count:,}, capacity={self.capacity:,})"

    # ------------------------------------------------------------------
    # column views over the valid rows
    # ------------------------------------------------------------------
    @property
    def users(self) -> np.ndarray:
        return self.rows["user"][: self.count]

    @property
    def items(self) -> np.ndarray:
        return self.rows["item"][: self.count]

    @property
    def ratings(self) -> np.ndarray:
        return self.rows["rating"][: self.count]

    # ------------------------------------------------------------------
    # access
    # ------------------------------------------------------------------
    def get(self, index: int) -> Rating:
        if not 0 <= index < self.count:
            raise IndexError(f"rating index {index} out of range [0, {self.count})")
        user, item, rating = self.rows[index].tolist()
        return Rating(user, item, rating)

    def sample_random(self, rng: np.random.Generator) -> Rating:
        """Uniformly random row among the first ``count`` (with replacement)."""
        return self.get(int(rng.integers(self.count)))

    def sample_indices(self, rng: np.random.Generator, size: int) -> np.ndarray:
        """*size* independent uniform row indices, same distribution as ``sample_random``."""
        return rng.integers(0, self.count, size=size)

    # ------------------------------------------------------------------
    # builders
    # ------------------------------------------------------------------
    def _append(self, users: np.ndarray, items: np.ndarray, ratings: np.ndarray) -> None:
        n = len(users)
        if self.count + n > self.capacity:
            raise CapacityExceeded(self.capacity, self.count + n)

        if n:
            for name, ids in (("user", users), ("item", items)):
                if ids.min() < 0 or ids.max() > _INT32_MAX:
                    raise FormatError(f"{name} ids must lie in [0, {_INT32_MAX}]")
            if ratings.min() < _INT32_MIN or ratings.max() > _INT32_MAX:
                raise FormatError(f"ratings must fit a 32-bit integer, got {ratings.min()}..{ratings.max()}")

        block = self.rows[self.count : self.count + n]
        block["user"] = users
        block["item"] = items
        block["rating"] = ratings
        self.count += n

    @classmethod
    def from_frames(cls, frames: Iterable[pd.DataFrame], capacity: int) -> "RatingStore":
        """Build a store from chunks with ``user``, ``item`` and ``rating`` columns."""
        store = cls(capacity)
        for frame in frames:
            store._append(
                frame["user"].to_numpy(),
                frame["item"].to_numpy(),
                frame["rating"].to_numpy(),
            )
        return store

    @classmethod
    def from_records(cls, records: Iterable[tuple[int, int, int]], capacity: int) -> "RatingStore":
        """Build a store from ``(user, item, rating)`` triples."""
        # one row past capacity is enough to know the source does not fit
        head = list(itertools.islice(records, capacity + 1))
        if len(head) > capacity:
            raise CapacityExceeded(capacity, len(head))

        frame = pd.DataFrame(head, columns=["user", "item", "rating"], dtype=np.int64)
        return cls.from_frames([frame], capacity)

    @classmethod
    def load_table(cls, path: str | Path, capacity: int) -> "RatingStore":
        """Read a header-prefixed text table (``[row_id] user item rating``)."""
        logger.info(f"Reading ratings table {path}")
        store = cls.from_frames(iter_ratings(path), capacity)
        logger.info(f"Loaded {store.count:,} ratings")
        return store

    @classmethod
    def load_binary(cls, path: str | Path, capacity: int) -> "RatingStore":
        """Read a dense block: ``int32 count`` followed by at least ``count`` rows.

        Files written by :meth:`dump_binary` hold exactly ``count`` rows; blocks
        padded out to a larger fixed capacity are accepted as well and the
        padding is ignored.
        """
        path = Path(path)
        logger.info(f"Reading ratings block {path}")
        body_size = path.stat().st_size - COUNT_DTYPE.itemsize

        with path.open("rb") as f:
            header = np.fromfile(f, dtype=COUNT_DTYPE, count=1)
            if header.size != 1:
                raise FormatError(f"{path}: missing row count header")
            count = int(header[0])

            if count < 0:
                raise FormatError(f"{path}: negative row count {count}")
            if count > capacity:
                raise CapacityExceeded(capacity, count)
            if body_size % RATING_DTYPE.itemsize or body_size < count * RATING_DTYPE.itemsize:
                raise FormatError(
                    f"{path}: {body_size} bytes of rows cannot hold {count:,} "
                    f"records of {RATING_DTYPE.itemsize} bytes"
                )
            rows = np.fromfile(f, dtype=RATING_DTYPE, count=count)

        store = cls(capacity)
        store._append(rows["user"], rows["item"], rows["rating"])
        logger.info(f"Loaded {store.count:,} ratings")
        return store

    def dump_binary(self, path: str | Path) -> None:
        """Write the valid rows in the format :meth:`load_binary` reads."""
        path = Path(path)
        with path.open("wb") as f:
            np.array([self.count], dtype=COUNT_DTYPE).tofile(f)
            self.rows[: self.count].tofile(f)
        logger.info(f"Dumped {self.count:,} ratings to {path}")
