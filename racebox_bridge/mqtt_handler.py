"""MQTT publisher for RaceBox telemetry."""

import json
import logging

import paho.mqtt.client as mqtt

from .config import MqttConfig
from .telemetry import TelemetryRecord

logger = logging.getLogger(__name__)

# Reconnection settings
RECONNECT_DELAY_MIN = 1  # seconds
RECONNECT_DELAY_MAX = 120  # seconds


class MqttHandler:
    """Publishes decoded telemetry of one device to an MQTT broker."""

    def __init__(self, config: MqttConfig, device_id: str) -> None:
        self._config = config
        self._device_id = device_id
        self._connected = False
        self._serial_number: str | None = None

        client_id = f"racebox-bridge-{device_id}"
        self._client = mqtt.Client(mqtt.CallbackAPIVersion.VERSION2, client_id=client_id)
        self._client.on_connect = self._handle_connect
        self._client.on_disconnect = self._handle_disconnect

        # Enable automatic reconnection with exponential backoff
        self._client.reconnect_delay_set(RECONNECT_DELAY_MIN, RECONNECT_DELAY_MAX)

        if config.username:
            self._client.username_pw_set(config.username, config.password)

    @property
    def connected(self) -> bool:
        """Return True if currently connected to broker."""
        return self._connected

    @property
    def telemetry_topic(self) -> str:
        return f"{self._config.root_topic}/{self._device_id}/telemetry"

    @property
    def serial_topic(self) -> str:
        return f"{self._config.root_topic}/{self._device_id}/serial"

    def connect(self) -> None:
        """Connect to MQTT broker and start network loop."""
        logger.info(
            "Connecting to MQTT broker %s:%d",
            self._config.broker,
            self._config.port,
        )
        self._client.connect(self._config.broker, self._config.port)
        self._client.loop_start()

    def disconnect(self) -> None:
        """Stop network loop and disconnect from broker."""
        self._client.loop_stop()
        self._client.disconnect()
        logger.info("Disconnected from MQTT broker")

    def publish_record(self, record: TelemetryRecord) -> None:
        """Publish one telemetry record as JSON."""
        if not self._connected:
            logger.debug("Cannot publish: not connected to MQTT broker")
            return

        self._client.publish(self.telemetry_topic, json.dumps(record.to_dict()))
        logger.debug("Published telemetry to %s", self.telemetry_topic)

    def publish_serial_number(self, serial_number: str) -> None:
        """Publish the device serial number as a retained message.

        The value is kept and published again on every (re)connect.
        """
        self._serial_number = serial_number
        if not self._connected:
            logger.debug("Serial number queued until MQTT connects")
            return

        self._client.publish(self.serial_topic, serial_number, retain=True)
        logger.debug("Published serial number to %s", self.serial_topic)

    def _handle_connect(
        self,
        client: mqtt.Client,
        userdata: object,
        flags: mqtt.ConnectFlags,
        reason_code: mqtt.ReasonCode,
        properties: mqtt.Properties | None,
    ) -> None:
        if reason_code == 0:
            self._connected = True
            logger.info("Connected to MQTT broker")
            if self._serial_number is not None:
                client.publish(self.serial_topic, self._serial_number, retain=True)
        else:
            self._connected = False
            logger.error("MQTT connection failed: %s", reason_code)

    def _handle_disconnect(
        self,
        client: mqtt.Client,
        userdata: object,
        disconnect_flags: mqtt.DisconnectFlags,
        reason_code: mqtt.ReasonCode,
        properties: mqtt.Properties | None,
    ) -> None:
        self._connected = False
        if reason_code == 0:
            logger.info("Disconnected from MQTT broker (clean)")
        else:
            logger.warning(
                "Disconnected from MQTT broker: %s (will reconnect)",
                reason_code,
            )
