"""
Web Application Module

This module provides the Flask application that serves the exporter's
metrics to Prometheus along with liveness and readiness probes.
"""

from flask import Flask, Response
from prometheus_client import generate_latest
from prometheus_client.exposition import CONTENT_TYPE_LATEST

from access_exporter.inventory import InventorySource
from access_exporter.metrics import ExporterMetrics


def create_app(inventory_source: InventorySource, metrics: ExporterMetrics) -> Flask:
    """Create and configure the Flask application."""

    app = Flask(__name__)

    @app.route('/metrics')
    def get_metrics():
        """Expose all series in the Prometheus text format."""
        return Response(generate_latest(metrics.registry), content_type=CONTENT_TYPE_LATEST)

    @app.route('/healthz')
    def healthz():
        return Response("ok", status=200, mimetype='text/plain')

    @app.route('/readyz')
    def readyz():
        """Ready once the inventory source can reach the control plane."""
        if inventory_source.is_connected():
            return Response("ok", status=200, mimetype='text/plain')
        return Response("not connected to control plane", status=503, mimetype='text/plain')

    return app
