#!/usr/bin/env python3
"""
EMI Bridge - Entry Point

Reads data loads from an EMI meter over Modbus RTU and publishes them
to an MQTT broker at per-load intervals.

Usage:
    emibridge                         # Start with config.yaml
    emibridge --config my.yaml        # Use custom config file
    emibridge --dry-run               # Validate config and exit
    emibridge --verbose               # Enable debug logging
"""

import argparse
import asyncio
import signal
import sys
import time

from emibridge import __version__
from emibridge.common.config import BridgeConfig, load_config_file
from emibridge.common.exceptions import BrokerConnectionError, ConfigError, TransportError
from emibridge.common.logging_setup import (
    configure_from_env,
    get_service_logger,
    reconfigure_loggers,
)
from emibridge.services.acquisition import AcquisitionLoop, PollingScheduler
from emibridge.services.device import create_client_from_config
from emibridge.services.publish import create_session_factory

# Default configuration path
DEFAULT_CONFIG_PATH = "config.yaml"

logger = get_service_logger("main")


def print_data_loads(config: BridgeConfig) -> None:
    """Print the configured data load table."""
    print()
    print("=" * 72)
    print(f"  EMI BRIDGE v{__version__}")
    print("=" * 72)
    print(f"  Device:  {config.modbus.device} @ {config.modbus.baud_rate} baud, "
          f"slave {config.modbus.slave_id}")
    print(f"  Broker:  {config.mqtt.host}:{config.mqtt.port} "
          f"(payload: {config.mqtt.payload_format.value})")
    print()
    print(f"  {'NAME':<20} {'ADDR':>6} {'TYPE':<9} {'EVERY':>6}  TOPIC")
    for load in config.data_loads:
        print(
            f"  {load.name:<20} 0x{load.address:04X} {load.type.value:<9} "
            f"{load.polling_interval_s:>5}s  {load.topic}"
        )
    print("=" * 72)
    print()


async def main_async(config: BridgeConfig) -> int:
    """
    Connect to the meter and run the acquisition loop.

    Returns:
        Process exit code
    """
    transport = create_client_from_config(config.modbus)

    try:
        await transport.connect()
    except TransportError as e:
        logger.critical(f"Cannot open field device: {e}")
        return 1

    scheduler = PollingScheduler(config.data_loads, now=time.monotonic())
    loop = AcquisitionLoop(
        transport=transport,
        scheduler=scheduler,
        session_factory=create_session_factory(config.mqtt),
        payload_format=config.mqtt.payload_format,
    )

    event_loop = asyncio.get_running_loop()
    for sig in (signal.SIGTERM, signal.SIGINT):
        try:
            event_loop.add_signal_handler(sig, loop.stop)
        except NotImplementedError:
            # Windows
            pass

    try:
        await loop.run()
    except BrokerConnectionError as e:
        logger.critical(f"Broker unavailable, exiting: {e}")
        return 1
    finally:
        await transport.disconnect()

    return 0


def main() -> None:
    """Main entry point."""
    parser = argparse.ArgumentParser(
        description="EMI Modbus RTU to MQTT bridge",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
    emibridge                         # Start with default config
    emibridge --config my.yaml        # Use custom config file
    emibridge --dry-run               # Validate config and exit
    emibridge -v                      # Enable debug logging
        """
    )

    parser.add_argument(
        "--config", "-c",
        type=str,
        default=DEFAULT_CONFIG_PATH,
        help=f"Path to configuration file (default: {DEFAULT_CONFIG_PATH})"
    )

    parser.add_argument(
        "--dry-run",
        action="store_true",
        help="Validate configuration and exit without starting"
    )

    parser.add_argument(
        "--verbose", "-v",
        action="store_true",
        help="Enable verbose (debug) logging"
    )

    parser.add_argument(
        "--version",
        action="version",
        version=f"EMI Bridge v{__version__}"
    )

    args = parser.parse_args()

    try:
        config = load_config_file(args.config)
    except ConfigError as e:
        print(f"Error: {e}")
        sys.exit(1)

    # Plain text in verbose/debug mode
    if args.verbose:
        log_level, json_format = "DEBUG", False
    else:
        log_level, json_format = configure_from_env(config.logging.level, config.logging.format)
    reconfigure_loggers(log_level, json_format)

    print_data_loads(config)

    if args.dry_run:
        print("Dry run mode - configuration valid")
        sys.exit(0)

    try:
        exit_code = asyncio.run(main_async(config))
    except KeyboardInterrupt:
        print("\nStopped by user")
        exit_code = 0

    sys.exit(exit_code)


if __name__ == "__main__":
    main()
