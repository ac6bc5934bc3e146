"""Flask application exposing LSTM close-price forecasts as JSON."""
from __future__ import annotations

import atexit
import os
from concurrent.futures import TimeoutError as FutureTimeoutError
from typing import Optional

from flask import Flask, jsonify, request

from mlops.cache import DEFAULT_TTL_SECONDS, ResultCache
from mlops.errors import ForecastError
from mlops.service import DEFAULT_INTERVAL, DEFAULT_SYMBOL, ForecastService

APP_PORT = 3000
REQUEST_TIMEOUT_SECONDS: Optional[float] = None
CACHE_TTL_SECONDS = DEFAULT_TTL_SECONDS
GENERIC_ERROR = "Internal server error"


def create_app(service: Optional[ForecastService] = None, timeout: Optional[float] = REQUEST_TIMEOUT_SECONDS) -> Flask:
    """Build the Flask app around ``service`` (a default one when omitted)."""

    app = Flask(__name__)
    forecaster = service
    if forecaster is None:
        forecaster = ForecastService(cache=ResultCache(ttl_seconds=CACHE_TTL_SECONDS))
        # The app owns this pool; release its workers when the process exits.
        atexit.register(forecaster.shutdown, wait=False)
    app.extensions["forecast_service"] = forecaster

    @app.route("/api/results")
    def api_results():
        symbol = request.args.get("symbol") or DEFAULT_SYMBOL
        interval = request.args.get("interval") or DEFAULT_INTERVAL
        try:
            result = forecaster.forecast(symbol, interval, timeout=timeout)
        except FutureTimeoutError:
            app.logger.warning("Forecast for %s %s timed out after %ss", symbol, interval, timeout)
            return jsonify({"error": "Forecast timed out"}), 504
        except ForecastError as exc:
            app.logger.warning("Forecast for %s %s failed: %s", symbol, interval, exc)
            return jsonify({"error": GENERIC_ERROR}), 500
        except Exception:
            app.logger.exception("Unexpected failure forecasting %s %s", symbol, interval)
            return jsonify({"error": GENERIC_ERROR}), 500
        return jsonify(result.to_dict())

    @app.route("/api/health")
    def api_health():
        return jsonify({"status": "ok"})

    return app


if __name__ == "__main__":  # pragma: no cover - manual execution
    create_app().run(port=int(os.environ.get("PORT", APP_PORT)), debug=True)
