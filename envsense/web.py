"""Minimal web page showing the latest sensor snapshot."""

import logging
from typing import Optional, Protocol, Tuple

from flask import Flask, jsonify, render_template_string

logger = logging.getLogger(__name__)

PAGE_TEMPLATE = """<!DOCTYPE html>
<html>
<head>
<title>Sensor Values</title>
<meta http-equiv="refresh" content="{{ refresh }}">
</head>
<body>
<h1>Sensor Values</h1>
<p>Temperature: {{ temperature }}</p>
<p>Pressure: {{ pressure }}</p>
<p>Humidity: {{ humidity }}</p>
</body>
</html>
"""

UNAVAILABLE = "N/A"
REFRESH_SECONDS = 5


class SensorSource(Protocol):
    def is_connected(self) -> bool: ...

    def read_temperature(self) -> Tuple[float, bool]: ...

    def read_pressure(self) -> Tuple[float, bool]: ...

    def read_humidity(self) -> Tuple[float, bool]: ...


def _render(reading: Tuple[float, bool], fmt: str) -> str:
    value, observed = reading
    return fmt.format(value) if observed else UNAVAILABLE


def create_app(source: SensorSource) -> Flask:
    """Build the Flask app; routes only call the exposition accessors of `source`."""
    app = Flask(__name__)

    @app.route("/")
    def index():
        return render_template_string(
            PAGE_TEMPLATE,
            refresh=REFRESH_SECONDS,
            temperature=_render(source.read_temperature(), "{:.2f} °C"),
            pressure=_render(source.read_pressure(), "{:.1f} hPa"),
            humidity=_render(source.read_humidity(), "{:.2f} %RH"),
        )

    @app.route("/api/readings")
    def api_readings():
        def _entry(reading: Tuple[float, bool]) -> Optional[float]:
            value, observed = reading
            return value if observed else None

        return jsonify(
            {
                "connected": source.is_connected(),
                "temperature": _entry(source.read_temperature()),
                "pressure": _entry(source.read_pressure()),
                "humidity": _entry(source.read_humidity()),
            }
        )

    return app


def run_web_app(source: SensorSource, host: str = "0.0.0.0", port: int = 8080) -> None:
    """Serve the page on the calling thread until interrupted."""
    logger.info("HTTP server listening on http://%s:%d", host, port)
    create_app(source).run(host=host, port=port, debug=False, use_reloader=False)
