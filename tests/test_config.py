import pytest

from racebox_bridge.config import load_config

MINIMAL = """
device:
  address: "AA:BB:CC:DD:EE:FF"
mqtt:
  broker: localhost
"""


def write(tmp_path, text):
    path = tmp_path / "config.yaml"
    path.write_text(text)
    return path


def test_defaults(tmp_path):
    config = load_config(write(tmp_path, MINIMAL))
    assert config.device.address == "AA:BB:CC:DD:EE:FF"
    assert config.device.device_id == "aabbccddeeff"
    assert config.device.connect_timeout == 10.0
    assert config.mqtt.port == 1883
    assert config.mqtt.root_topic == "racebox"
    assert config.decoder.discard_stale_fragments is False
    assert config.decoder.fragment_timeout is None
    assert config.battery.low_level == 2


def test_full_config(tmp_path):
    text = MINIMAL.replace("  broker: localhost", "  broker: mqtt.local\n  port: 8883")
    text += """
  username: bridge
  password: secret
decoder:
  discard_stale_fragments: true
  fragment_timeout: 0.5
battery:
  low_level: 5
"""
    text = text.replace('  address: "AA:BB:CC:DD:EE:FF"', '  address: "AA:BB"\n  id: car-1')
    config = load_config(write(tmp_path, text))
    assert config.device.device_id == "car-1"
    assert config.mqtt.broker == "mqtt.local"
    assert config.mqtt.port == 8883
    assert config.mqtt.username == "bridge"
    assert config.decoder.discard_stale_fragments is True
    assert config.decoder.fragment_timeout == 0.5
    assert config.battery.low_level == 5


def test_missing_sections_reported_together(tmp_path):
    with pytest.raises(ValueError) as exc:
        load_config(write(tmp_path, "{}"))
    message = str(exc.value)
    assert "missing 'device' section" in message
    assert "missing 'mqtt' section" in message


def test_required_keys(tmp_path):
    with pytest.raises(ValueError, match="device.address is required"):
        load_config(write(tmp_path, "device: {}\nmqtt:\n  broker: x\n"))


def test_invalid_fragment_timeout(tmp_path):
    with pytest.raises(ValueError, match="fragment_timeout"):
        load_config(write(tmp_path, MINIMAL + "decoder:\n  fragment_timeout: -1\n"))


def test_invalid_battery_level(tmp_path):
    with pytest.raises(ValueError, match="low_level"):
        load_config(write(tmp_path, MINIMAL + "battery:\n  low_level: 150\n"))


def test_missing_file(tmp_path):
    with pytest.raises(FileNotFoundError):
        load_config(tmp_path / "nope.yaml")


@pytest.mark.parametrize("value", ["0", "-5", '"fast"', "true"])
def test_invalid_connect_timeout(tmp_path, value):
    text = MINIMAL.replace(
        '  address: "AA:BB:CC:DD:EE:FF"',
        f'  address: "AA:BB:CC:DD:EE:FF"\n  connect_timeout: {value}',
    )
    with pytest.raises(ValueError, match="connect_timeout"):
        load_config(write(tmp_path, text))


def test_discard_stale_fragments_must_be_boolean(tmp_path):
    text = MINIMAL + 'decoder:\n  discard_stale_fragments: "false"\n'
    with pytest.raises(ValueError, match="discard_stale_fragments"):
        load_config(write(tmp_path, text))
