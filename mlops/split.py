"""Dataset splitting strategies tailored for time series."""
from __future__ import annotations

import math
from typing import Tuple

import pandas as pd

TRAIN_FRACTION = 0.8


def split_index(length: int, train_fraction: float = TRAIN_FRACTION) -> int:
    """Return the index of the first testing record for ``length`` records."""

    if not 0 < train_fraction < 1:
        raise ValueError("train_fraction must be between 0 and 1")
    if length < 0:
        raise ValueError("length must be non-negative")
    return int(math.floor(length * train_fraction))


def chronological_split(
    df: pd.DataFrame, train_fraction: float = TRAIN_FRACTION
) -> Tuple[pd.DataFrame, pd.DataFrame]:
    """Split time-ordered records into train/test partitions.

    Parameters
    ----------
    df:
        Records sorted chronologically.
    train_fraction:
        Share of records (rounded down) assigned to the training prefix. The
        remaining suffix is the testing partition. Rows are never shuffled.
    """

    idx = split_index(len(df), train_fraction)
    train = df.iloc[:idx].copy()
    test = df.iloc[idx:].copy()
    return train, test
