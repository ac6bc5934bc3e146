"""Max-based feature scaling with an exact inverse."""
from __future__ import annotations

from typing import Dict, Iterable, List

import numpy as np
import pandas as pd


def normalize(value, scale: float):
    """Divide ``value`` by ``scale``; a zero scale maps everything to zero."""

    if scale == 0:
        return value * 0.0
    return value / scale


def denormalize(value, scale: float):
    return value * scale


class MaxScaler:
    """Scale each column by its maximum over the fitted frame.

    Mirrors the ``fit``/``transform`` interface of scikit-learn scalers but
    keeps a named scale per column so single values (e.g. a predicted close)
    can be mapped back with :meth:`inverse_value`.
    """

    def __init__(self) -> None:
        self.scales_: Dict[str, float] = {}

    @property
    def columns(self) -> List[str]:
        return list(self.scales_)

    def fit(self, df: pd.DataFrame, columns: Iterable[str]) -> "MaxScaler":
        columns = list(columns)
        if df.empty:
            raise ValueError("Cannot fit scale factors on an empty dataframe")
        missing = set(columns) - set(df.columns)
        if missing:
            raise KeyError(f"Columns not present in dataframe: {sorted(missing)}")
        self.scales_ = {column: float(df[column].max()) for column in columns}
        return self

    def _check_fitted(self) -> None:
        if not self.scales_:
            raise RuntimeError("MaxScaler must be fitted before use")

    def transform(self, df: pd.DataFrame) -> pd.DataFrame:
        """Return a copy of ``df`` with every fitted column scaled."""

        self._check_fitted()
        scaled = df.copy()
        for column, scale in self.scales_.items():
            scaled[column] = normalize(df[column].astype("float64"), scale)
        return scaled

    def fit_transform(self, df: pd.DataFrame, columns: Iterable[str]) -> pd.DataFrame:
        return self.fit(df, columns).transform(df)

    def inverse_transform(self, df: pd.DataFrame) -> pd.DataFrame:
        self._check_fitted()
        restored = df.copy()
        for column, scale in self.scales_.items():
            restored[column] = denormalize(df[column].astype("float64"), scale)
        return restored

    def inverse_value(self, column: str, value):
        """Map a normalized scalar or array for ``column`` back to raw units."""

        self._check_fitted()
        if column not in self.scales_:
            raise KeyError(f"No scale factor fitted for column '{column}'")
        result = denormalize(np.asarray(value, dtype=np.float64), self.scales_[column])
        if np.ndim(result) == 0:
            return float(result)
        return result
