"""PyTorch-based LSTM regressor for next-close forecasting."""
from __future__ import annotations

from dataclasses import dataclass
import math
from pathlib import Path
from typing import List, Optional, Sequence, Tuple
import sys

import numpy as np
import torch
from torch import nn
from torch.utils.data import DataLoader, Dataset


# Ensure project root is on PYTHONPATH when executing this file directly.
_PROJECT_ROOT = Path(__file__).resolve().parent.parent
if str(_PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(_PROJECT_ROOT))

PREDICT_BATCH_SIZE = 2048


@dataclass
class LSTMTrainingConfig:
    hidden_sizes: Tuple[int, ...] = (100, 50)
    dropout: float = 0.0
    epochs: int = 50
    batch_size: int = 32
    learning_rate: float = 1e-3


class _WindowDataset(Dataset):
    """Dataset over pre-built windows of shape (n_windows, input_size, n_features)."""

    def __init__(self, windows: np.ndarray, labels: Optional[np.ndarray] = None) -> None:
        if windows.ndim != 3:
            raise ValueError("Expected windows with shape (n_windows, input_size, n_features)")
        self.windows = torch.as_tensor(np.ascontiguousarray(windows, dtype=np.float32))

        self.labels: Optional[torch.Tensor]
        if labels is None:
            self.labels = None
        else:
            if len(labels) != len(windows):
                raise ValueError("Labels must align with available windows")
            self.labels = torch.as_tensor(np.asarray(labels, dtype=np.float32))

    def __len__(self) -> int:
        return self.windows.shape[0]

    def __getitem__(self, idx: int):
        if self.labels is None:
            return self.windows[idx]
        return self.windows[idx], self.labels[idx]


class _LSTMRegressor(nn.Module):
    def __init__(
        self,
        n_features: int,
        hidden_sizes: Sequence[int],
        dropout: float,
    ) -> None:
        super().__init__()
        if not hidden_sizes:
            raise ValueError("At least one recurrent layer is required")
        if not 0.0 <= dropout < 1.0:
            raise ValueError("dropout must be in [0, 1)")
        layers = []
        in_size = n_features
        for hidden in hidden_sizes:
            layers.append(nn.LSTM(input_size=in_size, hidden_size=hidden, batch_first=True))
            in_size = hidden
        self.lstm_layers = nn.ModuleList(layers)
        self.dropout = dropout
        self.output = nn.Linear(in_size, 1)
        # Source of dropout masks; None draws from the global torch RNG.
        self.dropout_generator: Optional[torch.Generator] = None

    def reset_parameters(self, generator: Optional[torch.Generator] = None) -> None:
        """Draw every weight and bias from U(-k, k) with ``k = 1 / sqrt(fan)``.

        ``fan`` is the hidden width for recurrent layers and the input width
        for the output unit, matching the PyTorch defaults for both.
        """

        with torch.no_grad():
            for layer in self.lstm_layers:
                bound = 1.0 / math.sqrt(layer.hidden_size)
                for param in layer.parameters():
                    param.uniform_(-bound, bound, generator=generator)
            bound = 1.0 / math.sqrt(self.output.in_features)
            for param in self.output.parameters():
                param.uniform_(-bound, bound, generator=generator)

    def _drop(self, out: torch.Tensor) -> torch.Tensor:
        if not self.training or self.dropout == 0:
            return out
        keep = 1.0 - self.dropout
        mask = torch.bernoulli(torch.full_like(out, keep), generator=self.dropout_generator)
        return out * mask / keep

    def forward(self, x: torch.Tensor) -> torch.Tensor:
        out = x
        for idx, layer in enumerate(self.lstm_layers):
            out, _ = layer(out)
            if idx < len(self.lstm_layers) - 1:
                out = self._drop(out)
        last = out[:, -1, :]
        return self.output(last).squeeze(-1)


class LSTMForecaster:
    """Recurrent regressor predicting the next normalized close of a window.

    A forecaster is trained exactly once; construct a new instance to retrain.
    Passing ``seed`` gives the instance private generators for weight
    initialisation, mini-batch order and dropout, so seeded runs are
    reproducible across threads and never touch the global torch RNG.
    """

    def __init__(
        self,
        input_size: int,
        n_features: int,
        config: Optional[LSTMTrainingConfig] = None,
        seed: Optional[int] = None,
        device: Optional[torch.device] = None,
    ) -> None:
        if input_size <= 0 or n_features <= 0:
            raise ValueError("input_size and n_features must be positive")
        self.input_size = input_size
        self.n_features = n_features
        self.config = config or LSTMTrainingConfig()
        self.seed = seed
        self.device = device or torch.device("cuda" if torch.cuda.is_available() else "cpu")
        self.loss_history: List[float] = []
        self._trained = False

        # Built on the meta device so construction draws no random numbers;
        # storage is allocated afterwards and filled by reset_parameters.
        with torch.device("meta"):
            model = _LSTMRegressor(
                n_features=n_features,
                hidden_sizes=self.config.hidden_sizes,
                dropout=self.config.dropout,
            )
        self.model = model.to_empty(device=self.device)
        self.model.reset_parameters(self._generator())
        self.model.dropout_generator = self._generator()

    def _generator(self, device: Optional[torch.device] = None) -> Optional[torch.Generator]:
        if self.seed is None:
            return None
        return torch.Generator(device=device or self.device).manual_seed(self.seed)

    @property
    def is_trained(self) -> bool:
        return self._trained

    def _check_windows(self, windows: np.ndarray) -> np.ndarray:
        windows = np.asarray(windows, dtype=np.float32)
        if windows.ndim != 3 or windows.shape[1:] != (self.input_size, self.n_features):
            raise ValueError(
                f"Expected windows shaped (n, {self.input_size}, {self.n_features}), got {windows.shape}"
            )
        return windows

    def fit(self, windows: np.ndarray, labels: np.ndarray) -> List[float]:
        """Train on ``windows`` and return the mean MSE loss of every epoch."""

        if self._trained:
            raise RuntimeError("Model already trained; construct a new LSTMForecaster to retrain")
        windows = self._check_windows(windows)
        if len(windows) == 0:
            raise ValueError("Cannot train on an empty set of windows")

        cfg = self.config
        dataset = _WindowDataset(windows, labels)
        loader = DataLoader(
            dataset,
            batch_size=cfg.batch_size,
            shuffle=True,
            generator=self._generator(torch.device("cpu")),
        )

        criterion = nn.MSELoss()
        optimiser = torch.optim.Adam(self.model.parameters(), lr=cfg.learning_rate)

        history: List[float] = []
        self.model.train()
        for _ in range(cfg.epochs):
            epoch_loss = 0.0
            for batch_x, batch_y in loader:
                batch_x = batch_x.to(self.device)
                batch_y = batch_y.to(self.device)
                optimiser.zero_grad()
                predictions = self.model(batch_x)
                loss = criterion(predictions, batch_y)
                loss.backward()
                optimiser.step()
                epoch_loss += float(loss.item()) * len(batch_x)
            history.append(epoch_loss / len(dataset))

        self.loss_history = history
        self._trained = True
        return list(history)

    def predict(self, windows: np.ndarray):
        """Predict normalized closes.

        A single window of shape ``(input_size, n_features)`` returns a float;
        a batch of shape ``(n, input_size, n_features)`` returns a 1-D float64
        array.
        """

        if not self._trained:
            raise RuntimeError("Model must be trained before predicting")
        windows = np.asarray(windows, dtype=np.float32)
        single = windows.ndim == 2
        if single:
            windows = windows[np.newaxis, ...]
        windows = self._check_windows(windows)
        if len(windows) == 0:
            return np.empty((0,), dtype=np.float64)

        inputs = torch.as_tensor(np.ascontiguousarray(windows))
        predictions = np.empty(len(windows), dtype=np.float64)

        self.model.eval()
        with torch.no_grad():
            for start in range(0, len(inputs), PREDICT_BATCH_SIZE):
                batch_x = inputs[start : start + PREDICT_BATCH_SIZE].to(self.device)
                out = self.model(batch_x).cpu().numpy()
                predictions[start : start + len(out)] = out

        if single:
            return float(predictions[0])
        return predictions



def train_lstm(
    windows: np.ndarray,
    labels: np.ndarray,
    config: Optional[LSTMTrainingConfig] = None,
    seed: Optional[int] = None,
) -> Tuple[LSTMForecaster, List[float]]:
    windows = np.asarray(windows, dtype=np.float32)
    if windows.ndim != 3:
        raise ValueError("Expected windows with shape (n_windows, input_size, n_features)")
    model = LSTMForecaster(
        input_size=windows.shape[1],
        n_features=windows.shape[2],
        config=config,
        seed=seed,
    )
    loss_history = model.fit(windows, labels)
    return model, loss_history


def main() -> None:
    import argparse

    from mlops.data_loader import DEFAULT_LIMIT, fetch_klines, load_parquet
    from mlops.pipeline import PipelineConfig, run_forecast

    parser = argparse.ArgumentParser(description="Train the LSTM forecaster and predict the next close.")
    parser.add_argument(
        "--data",
        type=Path,
        default=None,
        help="Parquet candle dataset. When omitted candles are fetched from Binance.",
    )
    parser.add_argument("--symbol", default="BTC", help="Base asset, quoted in USDT.")
    parser.add_argument("--interval", default="1d", help="Binance kline interval.")
    parser.add_argument("--limit", type=int, default=DEFAULT_LIMIT)
    parser.add_argument("--input-size", type=int, default=7)
    parser.add_argument("--epochs", type=int, default=50)
    parser.add_argument("--batch-size", type=int, default=32)
    parser.add_argument("--learning-rate", type=float, default=1e-3)
    parser.add_argument("--hidden-sizes", type=int, nargs="+", default=[100, 50])
    parser.add_argument(
        "--scale-scope",
        choices=["full", "train"],
        default="full",
        help="Fit scale factors on the whole series or on the training partition only.",
    )
    parser.add_argument("--seed", type=int, default=None)
    args = parser.parse_args()

    if args.data is not None:
        candles = load_parquet(args.data)
    else:
        candles = fetch_klines(args.symbol, args.interval, limit=args.limit)

    config = PipelineConfig(
        input_size=int(args.input_size),
        scale_scope=args.scale_scope,
        seed=args.seed,
        training=LSTMTrainingConfig(
            hidden_sizes=tuple(args.hidden_sizes),
            epochs=int(args.epochs),
            batch_size=int(args.batch_size),
            learning_rate=float(args.learning_rate),
        ),
    )
    result = run_forecast(candles, config)

    print(f"Candles: {len(result.historical)}, test points: {len(result.test_predictions)}")
    print(f"Final training loss: {result.loss_history[-1]:.6f}")
    print("Test metrics:")
    for key, value in result.test_metrics.items():
        print(f"  {key}: {value:.4f}")
    print(f"Future date: {result.future_date.isoformat()}")
    print(f"Future prediction: {result.future_prediction:.4f}")
    if result.percentage_difference is None:
        print("Percentage difference: undefined (last test prediction is zero)")
    else:
        print(f"Percentage difference: {result.percentage_difference:+.2f}%")


if __name__ == "__main__":
    main()
