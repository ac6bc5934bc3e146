"""Sequence models used by the forecasting pipeline."""

from .lstm_model import LSTMForecaster, LSTMTrainingConfig, train_lstm

__all__ = ["LSTMForecaster", "LSTMTrainingConfig", "train_lstm"]
