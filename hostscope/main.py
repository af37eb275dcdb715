from __future__ import annotations

import argparse
import json
import logging
import time
from typing import Any

from hostscope.config import AppConfig, load_config
from hostscope.drivers.base import OperatingSystemDriver
from hostscope.executor import CommandExecutor
from hostscope.logging_utils import configure_logging, resolve_log_level
from hostscope.mqtt_client import MqttPublisher
from hostscope.platforms import create_driver, current_platform
from hostscope.report import build_report
from hostscope.schema import validate_report


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Hostscope OS introspection reporter")
    parser.add_argument(
        "--config",
        default="config/example.cfg",
        help="Path to CFG configuration file",
    )
    parser.add_argument(
        "--log-level",
        default="INFO",
        help="Logging level (DEBUG, INFO, WARNING, ERROR)",
    )
    parser.add_argument(
        "-v",
        "--verbose",
        action="count",
        default=0,
        help="Enable debug logging (-v) or trace logging (-vv)",
    )
    parser.add_argument(
        "--dry-run",
        action="store_true",
        help="Log reports without publishing to MQTT",
    )
    parser.add_argument(
        "--once",
        action="store_true",
        help="Collect and publish a single report, then exit",
    )
    parser.add_argument(
        "--dump-json",
        help="Write the JSON report to a file (overwrites on each loop)",
    )
    parser.add_argument(
        "--publish-status",
        metavar="STATUS",
        help="Publish a status (e.g., 'sleeping', 'online') to the availability topic and exit. "
             "Useful for system sleep/wake hooks.",
    )
    return parser


def _serialize(report: dict[str, Any], pretty: bool) -> str:
    return json.dumps(report, indent=2) if pretty else json.dumps(report)


def _collect(
    driver: OperatingSystemDriver,
    config: AppConfig,
    logger: logging.Logger,
    pretty: bool,
) -> str:
    report = build_report(driver, config.probe)
    schema_errors = validate_report(report)
    if schema_errors:
        logger.warning("Schema validation failed with %s errors.", len(schema_errors))
        logger.debug("Schema errors: %s", schema_errors)
    else:
        logger.debug("Schema validation passed.")
    return _serialize(report, pretty)


def _publish_status(publisher: MqttPublisher, status: str, logger: logging.Logger) -> None:
    publisher.connect()
    # Wait briefly for connection to establish
    time.sleep(0.5)
    if publisher.connected:
        publisher.publish_status(status)
        # Wait for message delivery
        time.sleep(0.5)
    else:
        logger.error("Failed to connect to MQTT broker")
    publisher.disconnect()


def main(argv: list[str] | None = None) -> None:
    parser = build_parser()
    args = parser.parse_args(argv)

    level = resolve_log_level(args.verbose, args.log_level)
    configure_logging(level)
    logger = logging.getLogger("hostscope")
    config = load_config(args.config)
    pretty_print = level <= logging.DEBUG

    if args.publish_status:
        _publish_status(MqttPublisher(config.mqtt), args.publish_status, logger)
        return

    driver = create_driver(
        current_platform(),
        CommandExecutor(timeout=config.probe.command_timeout_s),
    )
    publisher = None if args.dry_run else MqttPublisher(config.mqtt)
    if publisher is not None:
        publisher.connect()

    interval = max(1, config.publish.interval_s)
    if not args.once:
        logger.info("Hostscope started. Publishing every %s seconds.", interval)

    try:
        while True:
            report_json = _collect(driver, config, logger, pretty_print)
            if args.dump_json:
                with open(args.dump_json, "w", encoding="utf-8") as handle:
                    handle.write(report_json)
            if args.dry_run:
                logger.info("Dry run enabled; skipping MQTT publish.")
                logger.debug("Report: %s", report_json)
            elif publisher is not None:
                publisher.publish(report_json)
            if args.once:
                logger.info("Single-run mode enabled; exiting after one report.")
                break
            time.sleep(interval)
    except KeyboardInterrupt:
        logger.info("Hostscope stopped.")
    finally:
        if publisher is not None:
            publisher.disconnect()


if __name__ == "__main__":
    main()
