"""BLE transport handler for RaceBox devices."""

import asyncio
import logging
from collections.abc import Callable

from bleak import BleakClient
from bleak.backends.characteristic import BleakGATTCharacteristic
from bleak.exc import BleakError

from .config import DeviceConfig

logger = logging.getLogger(__name__)

# Nordic UART service carrying the data messages
UART_SERVICE_UUID = "6e400001-b5a3-f393-e0a9-e50e24dcca9e"
UART_TX_CHAR_UUID = "6e400003-b5a3-f393-e0a9-e50e24dcca9e"

DEVICE_INFO_SERVICE_UUID = "0000180a-0000-1000-8000-00805f9b34fb"
SERIAL_NUMBER_CHAR_UUID = "00002a25-0000-1000-8000-00805f9b34fb"

# Reconnection settings
RECONNECT_DELAY_MIN = 1  # seconds
RECONNECT_DELAY_MAX = 60  # seconds


class BleHandler:
    """Handles the BLE connection to a single RaceBox device."""

    def __init__(self, config: DeviceConfig, on_data: Callable[[bytes], None]) -> None:
        self._config = config
        self._on_data = on_data
        self._client: BleakClient | None = None
        self._disconnected = asyncio.Event()
        self._reconnect_delay = RECONNECT_DELAY_MIN

    @property
    def connected(self) -> bool:
        """Return True if the device is connected."""
        return self._client is not None and self._client.is_connected

    async def open(self) -> None:
        """Connect to the device and subscribe to data notifications."""
        self._disconnected.clear()
        self._client = BleakClient(
            self._config.address,
            disconnected_callback=self._handle_disconnect,
        )
        await self._client.connect(timeout=self._config.connect_timeout)
        logger.info("Connected to %s", self._config.address)

        try:
            await self._client.start_notify(UART_TX_CHAR_UUID, self._handle_notify)
        except BleakError:
            logger.error("Failed to subscribe to %s", UART_TX_CHAR_UUID)
            await self._client.disconnect()
            self._client = None
            raise
        logger.info("Subscribed to %s", UART_TX_CHAR_UUID)
        self._reconnect_delay = RECONNECT_DELAY_MIN  # Reset backoff on success

    async def close(self) -> None:
        """Stop notifications and disconnect."""
        if self._client and self._client.is_connected:
            try:
                await self._client.stop_notify(UART_TX_CHAR_UUID)
            except BleakError as e:
                logger.debug("Stop notify failed: %s", e)
            await self._client.disconnect()
            logger.info("Disconnected from %s", self._config.address)
        self._client = None

    async def read_serial_number(self) -> bytes | None:
        """Read the serial number characteristic once, if the device exposes it."""
        if not self.connected:
            return None
        try:
            return bytes(await self._client.read_gatt_char(SERIAL_NUMBER_CHAR_UUID))
        except BleakError as e:
            logger.warning("Failed to read serial number: %s", e)
            return None

    async def try_reconnect(self) -> bool:
        """
        Attempt to reconnect to the device.

        Returns True if reconnection successful, False otherwise.
        Uses exponential backoff between attempts.
        """
        await self.close()

        logger.info(
            "Attempting BLE reconnection in %d seconds...",
            self._reconnect_delay,
        )
        await asyncio.sleep(self._reconnect_delay)

        try:
            await self.open()
            return True
        except (BleakError, asyncio.TimeoutError) as e:
            logger.warning("BLE reconnection failed: %s", e)
            # Exponential backoff
            self._reconnect_delay = min(
                self._reconnect_delay * 2,
                RECONNECT_DELAY_MAX,
            )
            return False

    async def wait_disconnected(self) -> None:
        """Block until the device drops the connection."""
        await self._disconnected.wait()
        raise BleDisconnected()

    def _handle_notify(self, _: BleakGATTCharacteristic, data: bytearray) -> None:
        self._on_data(bytes(data))

    def _handle_disconnect(self, _: BleakClient) -> None:
        logger.warning("Device %s disconnected", self._config.address)
        self._disconnected.set()


class BleDisconnected(Exception):
    """Raised when the BLE device becomes unavailable."""

    pass
