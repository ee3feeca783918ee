"""
Access Inventory Exporter Entry Point

This is the main entry point for the exporter. It loads settings, builds the
inventory source, starts the poll scheduler and serves /metrics, /healthz
and /readyz.
"""

import os
import sys
import yaml
import signal
import logging
import argparse
from typing import Any, Dict, Optional

from access_exporter import __version__
from access_exporter.inventory import InventorySourceFactory
from access_exporter.metrics import ExporterMetrics, Reconciler
from access_exporter.scheduler import PollScheduler
from access_exporter.web import create_app

logger = logging.getLogger(__name__)

LOG_FORMAT = '%(asctime)s - %(name)s - %(levelname)s - %(message)s'
LOG_LEVELS = ['DEBUG', 'INFO', 'WARNING', 'ERROR']


def default_settings() -> Dict[str, Any]:
    return {
        'app': {'name': 'access-exporter', 'log_level': 'INFO'},
        'collection': {'refresh_interval_seconds': 60, 'api_timeout_seconds': 30},
        'web': {'host': '0.0.0.0', 'port': 8080},
        'inventory_source': {
            'type': 'http',
            'config': {'base_url': '', 'token_file': '', 'insecure': False}
        }
    }


def load_settings(config_path: str = 'config/settings.yaml') -> dict:
    """Load application settings from YAML file."""
    defaults = default_settings()

    if not os.path.exists(config_path):
        logger.warning(f"Settings file not found: {config_path}, using defaults")
        return defaults

    try:
        with open(config_path, 'r', encoding='utf-8') as f:
            settings = yaml.safe_load(f)
    except (yaml.YAMLError, IOError) as e:
        logger.error(f"Failed to load settings: {e}")
        return defaults

    if not settings:
        return defaults

    # Merge with defaults
    for key, value in defaults.items():
        if key not in settings:
            settings[key] = value
        elif isinstance(value, dict) and isinstance(settings[key], dict):
            for sub_key, sub_value in value.items():
                settings[key].setdefault(sub_key, sub_value)
    return settings


def apply_overrides(settings: dict, args: argparse.Namespace) -> dict:
    """Let command line flags take precedence over the settings file."""
    source_config = settings['inventory_source'].setdefault('config', {})

    if args.host:
        settings['web']['host'] = args.host
    if args.port:
        settings['web']['port'] = args.port
    if args.refresh_interval:
        settings['collection']['refresh_interval_seconds'] = args.refresh_interval
    if args.api_timeout:
        settings['collection']['api_timeout_seconds'] = args.api_timeout
    if args.source_url:
        settings['inventory_source']['type'] = 'http'
        source_config['base_url'] = args.source_url
    if args.identity_file:
        source_config['token_file'] = args.identity_file
    if args.insecure:
        source_config['insecure'] = True
    if args.log_level:
        settings['app']['log_level'] = args.log_level

    source_config.setdefault('timeout', settings['collection']['api_timeout_seconds'])
    return settings


def validate_settings(settings: dict) -> None:
    log_level = settings['app']['log_level']
    if not isinstance(log_level, str) or log_level.upper() not in LOG_LEVELS:
        raise ValueError(f"log_level must be one of {', '.join(LOG_LEVELS)}, got {log_level!r}")

    interval = settings['collection']['refresh_interval_seconds']
    if not isinstance(interval, (int, float)) or interval <= 0:
        raise ValueError(f"refresh_interval_seconds must be a positive number, got {interval!r}")

    source = settings['inventory_source']
    if source['type'] == 'http' and not source.get('config', {}).get('base_url'):
        raise ValueError("inventory_source.config.base_url (or --source-url) is required for the http source")


def parse_args(argv: Optional[list] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description='Access inventory exporter')
    parser.add_argument('--config', '-c', default='config/settings.yaml',
                        help='Path to settings file')
    parser.add_argument('--host', default=None,
                        help='Address the metrics endpoint binds to')
    parser.add_argument('--port', '-p', type=int, default=None,
                        help='Port the metrics endpoint binds to')
    parser.add_argument('--refresh-interval', type=float, default=None,
                        help='Seconds between inventory collections')
    parser.add_argument('--api-timeout', type=float, default=None,
                        help='Timeout in seconds for control plane API calls')
    parser.add_argument('--source-url', default=None,
                        help='Base URL of the control plane API')
    parser.add_argument('--identity-file', default=None,
                        help='Path to the identity file used for authentication')
    parser.add_argument('--insecure', action='store_true',
                        help='Skip TLS certificate verification (not recommended)')
    parser.add_argument('--log-level', default=None,
                        choices=LOG_LEVELS,
                        help='Logging level')
    parser.add_argument('--version', action='version',
                        version=f'access-exporter {__version__}')
    return parser.parse_args(argv)


def _raise_keyboard_interrupt(signum, frame):
    raise KeyboardInterrupt()


def main():
    """Main application entry point."""
    args = parse_args()

    logging.basicConfig(level=logging.INFO, format=LOG_FORMAT)

    settings = apply_overrides(load_settings(args.config), args)

    try:
        validate_settings(settings)
        logging.getLogger().setLevel(settings['app']['log_level'].upper())
        logger.info(f"Starting {settings['app']['name']} {__version__}")
        logger.info(f"Configuration loaded from: {args.config}")

        source_settings = settings['inventory_source']
        inventory_source = InventorySourceFactory.create(
            source_type=source_settings['type'],
            config=source_settings.get('config', {})
        )
    except ValueError as e:
        logger.error(f"Invalid configuration: {e}")
        sys.exit(1)
    logger.info(f"Inventory source initialized: {source_settings['type']}")

    metrics = ExporterMetrics()
    reconciler = Reconciler(inventory_source, metrics)

    interval = settings['collection']['refresh_interval_seconds']
    scheduler = PollScheduler(reconciler, interval_seconds=interval)
    scheduler.start()

    app = create_app(inventory_source=inventory_source, metrics=metrics)

    host = settings['web']['host']
    port = settings['web']['port']
    logger.info(f"Serving metrics on http://{host}:{port}/metrics")

    signal.signal(signal.SIGTERM, _raise_keyboard_interrupt)
    try:
        app.run(host=host, port=port, debug=False, use_reloader=False, threaded=True)
    except KeyboardInterrupt:
        logger.info("Shutting down...")
    finally:
        scheduler.stop()
        inventory_source.close()
        logger.info("Exporter stopped")


if __name__ == '__main__':
    main()
