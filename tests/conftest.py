"""
Shared pytest fixtures for mesh2mqtt tests
"""

import json
import tempfile
from pathlib import Path
from unittest.mock import MagicMock

import pytest

from mesh2mqtt.capabilities import Capability, parse_capabilities
from mesh2mqtt.entities import Bridge, Device, DeviceDefinition, Group, InMemoryDirectory, Scene
from mesh2mqtt.reconciler import DiscoveryReconciler
from mesh2mqtt.settings import Settings


BULB_CAPABILITIES = [
    {
        "type": "light",
        "features": [
            {"type": "binary", "name": "state", "property": "state", "access": 7,
             "value_on": "ON", "value_off": "OFF"},
            {"type": "numeric", "name": "brightness", "property": "brightness", "access": 7,
             "value_min": 0, "value_max": 254},
            {"type": "numeric", "name": "color_temp", "property": "color_temp", "access": 7,
             "value_min": 250, "value_max": 454, "unit": "mired"},
            {"type": "composite", "name": "color_xy", "property": "color", "access": 7},
            {"type": "composite", "name": "color_hs", "property": "color", "access": 7},
        ],
    },
    {"type": "enum", "name": "effect", "property": "effect", "access": 2,
     "values": ["blink", "breathe", "okay"]},
    {"type": "numeric", "name": "linkquality", "property": "linkquality", "access": 1,
     "unit": "lqi", "value_min": 0, "value_max": 255},
]

SENSOR_CAPABILITIES = [
    {"type": "numeric", "name": "battery", "property": "battery", "access": 1, "unit": "%",
     "value_min": 0, "value_max": 100},
    {"type": "numeric", "name": "temperature", "property": "temperature", "access": 1, "unit": "°C"},
    {"type": "binary", "name": "contact", "property": "contact", "access": 1,
     "value_on": False, "value_off": True},
]

BUTTON_CAPABILITIES = [
    {"type": "enum", "name": "action", "property": "action", "access": 1,
     "values": ["single", "double", "hold"]},
    {"type": "numeric", "name": "battery", "property": "battery", "access": 1, "unit": "%"},
]


class RecordedTimer:
    """Timer captured by RecordingScheduler"""

    def __init__(self, delay, callback):
        self.delay = delay
        self.callback = callback
        self.cancelled = False
        self.fired = False

    def cancel(self):
        self.cancelled = True


class RecordingScheduler:
    """schedule(delay, callback) replacement; timers fire only when run() is called"""

    def __init__(self):
        self.timers = []

    def __call__(self, delay, callback):
        timer = RecordedTimer(delay, callback)
        self.timers.append(timer)
        return timer

    @property
    def pending(self):
        return [t for t in self.timers if not t.fired and not t.cancelled]

    def delays(self):
        return [t.delay for t in self.pending]

    def run(self, delay=None):
        """Fire pending timers (optionally only those with the given delay)"""
        fired = 0
        for timer in list(self.pending):
            if delay is not None and timer.delay != delay:
                continue
            timer.fired = True
            timer.callback()
            fired += 1
        return fired


@pytest.fixture
def temp_dir():
    """Create a temporary directory for tests"""
    with tempfile.TemporaryDirectory() as tmpdir:
        yield Path(tmpdir)


@pytest.fixture
def settings():
    """Default settings with base topic 'z2m'"""
    settings = Settings()
    settings.mqtt.base_topic = 'z2m'
    return settings


@pytest.fixture
def mqtt_client():
    """Mock transport accepting every publish"""
    client = MagicMock()
    client.publish.return_value = True
    client.connected = True
    return client


@pytest.fixture
def published(mqtt_client):
    """Callable returning retained (topic, payload) publishes of the mock transport"""
    def get(prefix='homeassistant/'):
        result = []
        for call in mqtt_client.publish.call_args_list:
            topic, payload = call.args[0], call.args[1]
            if topic.startswith(prefix):
                result.append((topic, payload))
        return result
    return get


@pytest.fixture
def bridge():
    return Bridge(ieee_address='0x00124b0022ee5ab1', version='1.0.0',
                  coordinator_type='zStack3x0', coordinator_revision='20230507')


@pytest.fixture
def bulb():
    return Device(
        ieee_address='0x000b57fffec6a5b2',
        name='bulb',
        definition=DeviceDefinition(model='LED1545G12', vendor='IKEA', description='TRADFRI bulb E27'),
        capabilities=parse_capabilities(BULB_CAPABILITIES),
        software_build_id='2.3.087',
    )


@pytest.fixture
def weather_sensor():
    return Device(
        ieee_address='0x0017880104e45517',
        name='weather',
        definition=DeviceDefinition(model='WSDCGQ11LM', vendor='Aqara', description='Temperature sensor'),
        capabilities=parse_capabilities(SENSOR_CAPABILITIES),
    )


@pytest.fixture
def button():
    return Device(
        ieee_address='0x00158d0001e4f1a3',
        name='button',
        definition=DeviceDefinition(model='WXKG01LM', vendor='Aqara', description='Wireless switch'),
        capabilities=parse_capabilities(BUTTON_CAPABILITIES),
    )


@pytest.fixture
def group(bulb):
    return Group(group_id=1, name='living_room', members=[bulb], scenes=[Scene(id=3, name='Movie Night')])


@pytest.fixture
def directory(bridge, bulb, weather_sensor, button, group):
    return InMemoryDirectory(bridge, [bulb, weather_sensor, button], [group])


@pytest.fixture
def reconciler(settings, mqtt_client, directory):
    return DiscoveryReconciler(settings, mqtt_client, directory)


@pytest.fixture
def scheduler():
    return RecordingScheduler()


@pytest.fixture
def capability():
    """Build a capability from keyword arguments"""
    def build(**data):
        return Capability.from_dict(data)
    return build


@pytest.fixture
def payload_of(published):
    """Decode the last published payload for a topic"""
    def get(topic):
        for t, payload in reversed(published('')):
            if t == topic:
                return json.loads(payload) if payload else payload
        raise AssertionError(f"{topic} was not published")
    return get
