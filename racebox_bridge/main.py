"""Main entry point for RaceBox MQTT bridge."""

import argparse
import asyncio
import logging
import signal
import sys
from pathlib import Path

from bleak.exc import BleakError

from .ble_handler import BleDisconnected, BleHandler
from .config import Config, load_config
from .mqtt_handler import MqttHandler
from .protocol import FrameDecoder
from .session import TelemetrySession
from .telemetry import TelemetryRecord

logger = logging.getLogger(__name__)

# Initial connection retry settings
INITIAL_RETRY_DELAY = 5  # seconds


def main() -> None:
    """Entry point for racebox-bridge command."""
    parser = argparse.ArgumentParser(
        description="MQTT bridge for RaceBox BLE telemetry"
    )
    parser.add_argument(
        "-c",
        "--config",
        type=Path,
        default=Path("config.yaml"),
        help="Path to configuration file (default: config.yaml)",
    )
    parser.add_argument(
        "-v",
        "--verbose",
        action="store_true",
        help="Enable debug logging",
    )
    args = parser.parse_args()

    # Setup logging
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    try:
        config = load_config(args.config)
    except FileNotFoundError:
        logger.error("Configuration file not found: %s", args.config)
        sys.exit(1)
    except ValueError as e:
        logger.error("Configuration error: %s", e)
        sys.exit(1)

    asyncio.run(run(config))


def build_session(
    config: Config, mqtt_handler: MqttHandler, shutdown: asyncio.Event
) -> TelemetrySession:
    """Wire a telemetry session to the MQTT publisher."""
    decoder = FrameDecoder(
        discard_stale_fragments=config.decoder.discard_stale_fragments,
        fragment_timeout=config.decoder.fragment_timeout,
    )

    def handle_low_battery(record: TelemetryRecord) -> None:
        logger.warning(
            "Battery at %d%%, disconnecting from device", record.battery_level
        )
        shutdown.set()

    return TelemetrySession(
        on_record=mqtt_handler.publish_record,
        on_low_battery=handle_low_battery,
        decoder=decoder,
        low_battery_level=config.battery.low_level,
    )


async def run(config: Config) -> None:
    """Run the bridge with loaded configuration."""
    device_id = config.device.device_id
    mqtt_handler = MqttHandler(config=config.mqtt, device_id=device_id)
    shutdown = asyncio.Event()
    session = build_session(config, mqtt_handler, shutdown)
    ble_handler = BleHandler(config.device, on_data=session.handle_chunk)

    # Graceful shutdown
    loop = asyncio.get_running_loop()

    def handle_signal(signum, frame):
        logger.info("Shutdown requested")
        loop.call_soon_threadsafe(shutdown.set)

    signal.signal(signal.SIGINT, handle_signal)
    signal.signal(signal.SIGTERM, handle_signal)

    try:
        # Initial BLE connection with retry
        while not shutdown.is_set():
            try:
                await ble_handler.open()
                break
            except (BleakError, asyncio.TimeoutError) as e:
                logger.error(
                    "Failed to connect to %s: %s (retrying in %ds)",
                    config.device.address,
                    e,
                    INITIAL_RETRY_DELAY,
                )
                await asyncio.sleep(INITIAL_RETRY_DELAY)

        if shutdown.is_set():
            return

        mqtt_handler.connect()

        logger.info(
            "Bridge running: device='%s', publishing to '%s'",
            device_id,
            mqtt_handler.telemetry_topic,
        )

        # Main loop: stream notifications until disconnect or shutdown
        while not shutdown.is_set():
            if not ble_handler.connected:
                # Attempt reconnection
                session.reset()
                if not await ble_handler.try_reconnect():
                    continue
                logger.info("BLE reconnected")

            serial_number = await ble_handler.read_serial_number()
            if serial_number is not None:
                mqtt_handler.publish_serial_number(
                    session.set_serial_number(serial_number)
                )

            try:
                await _stream_until_stopped(ble_handler, shutdown)
            except BleDisconnected:
                logger.warning("BLE connection lost, will attempt reconnection")
                logger.info(
                    "Session stats: %d packets at %.1f Hz, %d chunks rejected",
                    session.packet_count,
                    session.packet_rate,
                    session.decoder.stats.rejected_total,
                )
                # Loop will handle reconnection on next iteration

    except Exception as e:
        logger.error("Unexpected error: %s", e)
        sys.exit(1)
    finally:
        await ble_handler.close()
        mqtt_handler.disconnect()
        logger.info("Bridge stopped")


async def _stream_until_stopped(
    ble_handler: BleHandler, shutdown: asyncio.Event
) -> None:
    disconnect = asyncio.create_task(ble_handler.wait_disconnected())
    stop = asyncio.create_task(shutdown.wait())
    try:
        await asyncio.wait({disconnect, stop}, return_when=asyncio.FIRST_COMPLETED)
    finally:
        stop.cancel()
        if not disconnect.done():
            disconnect.cancel()
    if disconnect.done() and not disconnect.cancelled():
        disconnect.result()


if __name__ == "__main__":
    main()
