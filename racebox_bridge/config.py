"""Configuration loading and validation."""

from dataclasses import dataclass, field
from pathlib import Path

import yaml


@dataclass
class DeviceConfig:
    address: str
    id: str | None = None
    connect_timeout: float = 10.0

    @property
    def device_id(self) -> str:
        """Identifier used in MQTT topics, defaults to the BLE address."""
        return self.id or self.address.replace(":", "").lower()


@dataclass
class MqttConfig:
    broker: str
    port: int = 1883
    username: str | None = None
    password: str | None = None
    root_topic: str = "racebox"


@dataclass
class DecoderConfig:
    discard_stale_fragments: bool = False
    fragment_timeout: float | None = None


@dataclass
class BatteryConfig:
    low_level: int = 2


@dataclass
class Config:
    device: DeviceConfig
    mqtt: MqttConfig
    decoder: DecoderConfig = field(default_factory=DecoderConfig)
    battery: BatteryConfig = field(default_factory=BatteryConfig)


def _is_positive_number(value: object) -> bool:
    return (
        isinstance(value, (int, float))
        and not isinstance(value, bool)
        and value > 0
    )


def load_config(path: Path) -> Config:
    """Load and validate configuration from YAML file."""
    with open(path) as f:
        raw = yaml.safe_load(f) or {}

    errors = []

    # Validate required sections
    if "device" not in raw:
        errors.append("missing 'device' section")
    elif "address" not in raw["device"]:
        errors.append("device.address is required")

    if "mqtt" not in raw:
        errors.append("missing 'mqtt' section")
    elif "broker" not in raw["mqtt"]:
        errors.append("mqtt.broker is required")

    device_raw = raw.get("device") or {}
    connect_timeout = device_raw.get("connect_timeout", 10.0)
    if not _is_positive_number(connect_timeout):
        errors.append("device.connect_timeout must be a positive number")

    decoder_raw = raw.get("decoder") or {}
    discard_stale = decoder_raw.get("discard_stale_fragments", False)
    if not isinstance(discard_stale, bool):
        errors.append("decoder.discard_stale_fragments must be true or false")

    timeout = decoder_raw.get("fragment_timeout")
    if timeout is not None and not _is_positive_number(timeout):
        errors.append("decoder.fragment_timeout must be a positive number")

    battery_raw = raw.get("battery") or {}
    low_level = battery_raw.get("low_level", 2)
    if (
        not isinstance(low_level, int)
        or isinstance(low_level, bool)
        or not 0 <= low_level <= 100
    ):
        errors.append("battery.low_level must be an integer between 0 and 100")

    if errors:
        raise ValueError(f"configuration validation failed: {'; '.join(errors)}")

    device = DeviceConfig(
        address=device_raw["address"],
        id=device_raw.get("id"),
        connect_timeout=connect_timeout,
    )

    mqtt_raw = raw["mqtt"]
    mqtt = MqttConfig(
        broker=mqtt_raw["broker"],
        port=mqtt_raw.get("port", 1883),
        username=mqtt_raw.get("username"),
        password=mqtt_raw.get("password"),
        root_topic=mqtt_raw.get("root_topic", "racebox"),
    )

    decoder = DecoderConfig(
        discard_stale_fragments=discard_stale,
        fragment_timeout=timeout,
    )

    return Config(
        device=device,
        mqtt=mqtt,
        decoder=decoder,
        battery=BatteryConfig(low_level=low_level),
    )
