"""Sliding-window dataset construction for sequence models."""
from __future__ import annotations

from dataclasses import dataclass
from typing import Iterable, List, Sequence, Tuple

import numpy as np
import pandas as pd

from mlops.errors import InsufficientDataError
from mlops.split import TRAIN_FRACTION, chronological_split

INPUT_SIZE = 7
MIN_RECORDS = 30
TARGET_COLUMN = "close"


@dataclass(frozen=True)
class WindowedDataset:
    """Training and testing windows built from one normalized sequence."""

    feature_columns: Tuple[str, ...]
    input_size: int
    split_index: int
    train_inputs: np.ndarray
    train_labels: np.ndarray
    test_inputs: np.ndarray
    test_labels: np.ndarray
    test_records: pd.DataFrame

    @property
    def n_features(self) -> int:
        return len(self.feature_columns)

    @property
    def labelled_test_records(self) -> pd.DataFrame:
        """Testing records that serve as a window label, in window order."""

        return self.test_records.iloc[self.input_size :]

    @property
    def future_window(self) -> np.ndarray:
        """The last ``input_size`` testing records, shaped for prediction."""

        values = self.test_records.loc[:, list(self.feature_columns)].to_numpy(dtype=np.float64)
        return values[-self.input_size :]


def make_windows(
    features: np.ndarray, targets: Sequence[float], input_size: int = INPUT_SIZE
) -> Tuple[np.ndarray, np.ndarray]:
    """Slice ``features`` into windows labelled with the following target.

    Window ``i`` covers rows ``[i, i + input_size)`` and is labelled with
    ``targets[i + input_size]``. A sequence of length ``L`` yields
    ``max(0, L - input_size)`` windows.
    """

    if input_size <= 0:
        raise ValueError("input_size must be positive")
    features = np.asarray(features, dtype=np.float64)
    if features.ndim != 2:
        raise ValueError("Expected feature matrix with shape (n_samples, n_features)")
    targets = np.asarray(targets, dtype=np.float64)
    if len(targets) != len(features):
        raise ValueError("features and targets must contain the same number of rows")

    count = max(len(features) - input_size, 0)
    if count == 0:
        return (
            np.empty((0, input_size, features.shape[1]), dtype=np.float64),
            np.empty((0,), dtype=np.float64),
        )
    inputs = np.stack([features[i : i + input_size] for i in range(count)])
    labels = targets[input_size : input_size + count].copy()
    return inputs, labels


def usable_records(df: pd.DataFrame, feature_columns: Iterable[str]) -> pd.DataFrame:
    """Rows whose feature values are all finite."""

    columns = list(feature_columns)
    if df.empty:
        return df.copy()
    values = df.loc[:, columns].astype("float64")
    mask = np.isfinite(values.to_numpy()).all(axis=1)
    return df.loc[mask].copy()


def ensure_sufficient(
    df: pd.DataFrame, feature_columns: Iterable[str], min_records: int = MIN_RECORDS
) -> pd.DataFrame:
    """Return the usable rows of ``df`` or raise :class:`InsufficientDataError`."""

    usable = usable_records(df, feature_columns)
    if len(usable) < min_records:
        raise InsufficientDataError(
            f"Need at least {min_records} usable records, got {len(usable)}",
            available=len(usable),
            required=min_records,
        )
    return usable


def _partition_windows(
    frame: pd.DataFrame, columns: List[str], input_size: int
) -> Tuple[np.ndarray, np.ndarray]:
    return make_windows(
        frame.loc[:, columns].to_numpy(dtype=np.float64),
        frame[TARGET_COLUMN].to_numpy(dtype=np.float64),
        input_size,
    )


def build_dataset(
    normalized: pd.DataFrame,
    feature_columns: Iterable[str],
    input_size: int = INPUT_SIZE,
    train_fraction: float = TRAIN_FRACTION,
    min_records: int = MIN_RECORDS,
) -> WindowedDataset:
    """Split ``normalized`` chronologically and window each partition.

    The partitions are windowed independently so no window straddles the
    split boundary.
    """

    columns = list(feature_columns)
    if TARGET_COLUMN not in columns:
        raise ValueError(f"feature_columns must include '{TARGET_COLUMN}'")

    usable = ensure_sufficient(normalized, columns, min_records)
    train_frame, test_frame = chronological_split(usable, train_fraction)

    train_inputs, train_labels = _partition_windows(train_frame, columns, input_size)
    test_inputs, test_labels = _partition_windows(test_frame, columns, input_size)
    if len(train_inputs) == 0 or len(test_inputs) == 0:
        raise InsufficientDataError(
            "Not enough records to build both training and testing windows "
            f"(train={len(train_frame)}, test={len(test_frame)}, input_size={input_size})",
            available=len(usable),
            required=min_records,
        )

    return WindowedDataset(
        feature_columns=tuple(columns),
        input_size=input_size,
        split_index=len(train_frame),
        train_inputs=train_inputs,
        train_labels=train_labels,
        test_inputs=test_inputs,
        test_labels=test_labels,
        test_records=test_frame,
    )
