"""
Home Assistant MQTT Discovery payloads for mesh2mqtt

DiscoveryEntry is the immutable output of the capability mapper.
PayloadFinalizer turns an entry into the absolute, hub-ready payload.
"""

import copy
import json
import logging
import re
from dataclasses import asdict, dataclass, field
from types import MappingProxyType
from typing import Any, Dict, List, Mapping, Optional, Tuple

from . import __version__
from .settings import Settings
from .topics import command_topic, encode_base_topic, state_topic

logger = logging.getLogger(__name__)

ORIGIN_NAME = 'Mesh2MQTT'
ORIGIN_URL = 'https://github.com/mesh2mqtt/mesh2mqtt'
IDENTIFIER_PREFIX = 'mesh2mqtt'

# Relative flags resolved to the entity state topic
STATE_TOPIC_FLAGS = (
    'position_topic',
    'tilt_status_topic',
    'mode_state_topic',
    'current_temperature_topic',
    'temperature_state_topic',
    'temperature_low_state_topic',
    'temperature_high_state_topic',
    'fan_mode_state_topic',
    'swing_mode_state_topic',
    'percentage_state_topic',
    'preset_mode_state_topic',
    'action_topic',
    'latest_version_topic',
)

# Relative command flags resolved to '.../set/{suffix}'; a string value is the suffix
COMMAND_TOPIC_SUFFIXES = {
    'tilt_command_topic': 'tilt',
    'mode_command_topic': 'system_mode',
    'fan_mode_command_topic': 'fan_mode',
    'swing_mode_command_topic': 'swing_mode',
    'percentage_command_topic': 'fan_mode',
    'preset_mode_command_topic': 'fan_mode',
    'temperature_command_topic': None,
    'temperature_low_command_topic': None,
    'temperature_high_command_topic': None,
}

OVERRIDE_SKIPPED_KEYS = ('type', 'object_id')


def freeze(value: Any) -> Any:
    """Deep-freeze a JSON-like value (dict -> MappingProxyType, list -> tuple)"""
    if isinstance(value, Mapping):
        return MappingProxyType({k: freeze(v) for k, v in value.items()})
    if isinstance(value, (list, tuple)):
        return tuple(freeze(v) for v in value)
    return value


def thaw(value: Any) -> Any:
    """Build a fresh mutable copy of a frozen value"""
    if isinstance(value, Mapping):
        return {k: thaw(v) for k, v in value.items()}
    if isinstance(value, tuple):
        return [thaw(v) for v in value]
    return copy.deepcopy(value)


def serialize(payload: Dict[str, Any]) -> str:
    """Deterministic JSON: sorted keys, no whitespace"""
    return json.dumps(payload, sort_keys=True, separators=(',', ':'))


@dataclass(frozen=True)
class MockProperty:
    """State property guaranteed to be present in published state"""
    property: str
    value: Any = None


@dataclass(frozen=True)
class DiscoveryEntry:
    """
    One hub-native entity configuration derived from capabilities

    The payload may contain relative flags (e.g. state_topic=True) that are
    resolved by PayloadFinalizer.
    """
    type: str
    object_id: str
    payload: Mapping[str, Any]
    mock_properties: Tuple[MockProperty, ...] = ()

    def __post_init__(self):
        object.__setattr__(self, 'payload', freeze(self.payload))
        object.__setattr__(self, 'mock_properties', tuple(
            MockProperty(m.property, freeze(m.value)) for m in self.mock_properties))

    def thaw(self) -> 'DiscoveryConfig':
        """Mutable copy owned by the caller"""
        return DiscoveryConfig(
            type=self.type,
            object_id=self.object_id,
            payload=thaw(self.payload),
            mock_properties=list(self.mock_properties),
        )


@dataclass
class DiscoveryConfig:
    """Mutable discovery configuration, subject to user overrides"""
    type: str
    object_id: str
    payload: Dict[str, Any]
    mock_properties: List[MockProperty] = field(default_factory=list)


@dataclass
class DeviceInfo:
    """Device information for HA discovery"""
    identifiers: List[str]
    name: str
    model: Optional[str] = None
    model_id: Optional[str] = None
    manufacturer: Optional[str] = None
    sw_version: Optional[str] = None
    hw_version: Optional[str] = None
    via_device: Optional[str] = None
    configuration_url: Optional[str] = None


class PayloadFinalizer:
    """Resolve relative flags, availability and user overrides of a discovery config"""

    def __init__(self, settings: Settings, directory, version: str = __version__):
        """
        Initialize finalizer

        Args:
            settings: mesh2mqtt settings
            directory: Entity directory (used to find the bridge)
            version: Gateway version reported in device and origin blocks
        """
        self.settings = settings
        self.directory = directory
        self.version = version

    @property
    def base_topic(self) -> str:
        return self.settings.mqtt.base_topic

    @property
    def origin(self) -> Dict[str, str]:
        return {'name': ORIGIN_NAME, 'sw': self.version, 'url': ORIGIN_URL}

    def bridge_identifier(self) -> str:
        return f"{IDENTIFIER_PREFIX}_bridge_{self.directory.bridge().ieee_address}"

    def device_payload(self, entity) -> Dict[str, Any]:
        """
        Build the 'device' block of a discovery payload

        Args:
            entity: Device, Group or Bridge

        Returns:
            Device registry attributes
        """
        ha_options = entity.options.get('homeassistant') or {}
        name = ha_options.get('name') if isinstance(ha_options.get('name'), str) else entity.name
        url = self.settings.frontend.url

        if entity.is_device:
            definition = entity.definition
            info = DeviceInfo(
                identifiers=[f"{IDENTIFIER_PREFIX}_{entity.ieee_address}"],
                name=name,
                model=definition.description if definition else None,
                model_id=definition.model if definition else None,
                manufacturer=definition.vendor if definition else None,
                sw_version=entity.software_build_id,
                via_device=self.bridge_identifier(),
                configuration_url=f"{url}/#/device/{entity.ieee_address}/info" if url else None,
            )
        elif entity.is_group:
            info = DeviceInfo(
                identifiers=[f"{IDENTIFIER_PREFIX}_{encode_base_topic(self.base_topic)}_{entity.group_id}"],
                name=name,
                model='Group',
                manufacturer=ORIGIN_NAME,
                sw_version=f"{ORIGIN_NAME} {self.version}",
                via_device=self.bridge_identifier(),
                configuration_url=f"{url}/#/group/{entity.group_id}" if url else None,
            )
        else:
            info = DeviceInfo(
                identifiers=[self.bridge_identifier()],
                name=name,
                model='Bridge',
                manufacturer=ORIGIN_NAME,
                hw_version=f"{entity.coordinator_type} {entity.coordinator_revision}",
                sw_version=entity.version,
                configuration_url=f"{url}/#/settings" if url else None,
            )

        return self._device_info_to_dict(info)

    def _device_info_to_dict(self, device_info: DeviceInfo) -> Dict:
        """Convert DeviceInfo to dictionary, dropping unset attributes"""
        return {k: v for k, v in asdict(device_info).items() if v is not None}

    def availability_enabled(self, entity) -> bool:
        """Per-entity 'availability' option wins over the global setting"""
        option = entity.options.get('availability')
        if option is not None:
            return bool(option)
        return self.settings.availability.enabled

    def finalize(self, config: DiscoveryConfig, entity) -> Dict[str, Any]:
        """
        Produce the absolute payload for a discovery config

        Args:
            config: Discovery config (after user renames)
            entity: Owning entity

        Returns:
            Hub-ready payload
        """
        payload = copy.deepcopy(config.payload)
        base = f"{self.base_topic}/{entity.name}"

        entity_state_topic = state_topic(self.base_topic, entity.name, payload.pop('state_topic_postfix', None))
        if payload.get('state_topic', True):
            payload['state_topic'] = entity_state_topic
        else:
            payload.pop('state_topic', None)

        for flag in STATE_TOPIC_FLAGS:
            if payload.get(flag):
                payload[flag] = entity_state_topic

        if self.settings.homeassistant.legacy_entity_attributes and not entity.is_bridge:
            payload['json_attributes_topic'] = entity_state_topic

        device_payload = self.device_payload(entity)

        object_id = re.sub(r'\s+', '_', device_payload['name']).lower()
        if config.object_id.startswith(config.type) and '_' in config.object_id:
            object_id += f"_{config.object_id.split('_', 1)[1]}"
        elif not config.object_id.startswith(config.type):
            object_id += f"_{config.object_id}"
        object_id_postfix = payload.pop('object_id_postfix', None)
        if object_id_postfix:
            object_id += object_id_postfix
        payload['object_id'] = object_id

        payload['unique_id'] = f"{entity.option_id}_{config.object_id}_{self.base_topic}"
        payload['device'] = device_payload
        payload['origin'] = self.origin

        self._apply_availability(payload, entity, base)
        self._apply_command_topics(payload, entity)
        self._apply_overrides(payload, config.object_id, entity)

        return payload

    def _apply_availability(self, payload: Dict[str, Any], entity, base: str):
        if 'availability' in payload and not payload['availability']:
            del payload['availability']
            return

        availability = [{'topic': f"{self.base_topic}/bridge/state"}]
        if entity.is_bridge:
            payload['availability_mode'] = 'all'
        elif self.availability_enabled(entity):
            payload['availability_mode'] = 'all'
            availability.append({'topic': f"{base}/availability"})

        if entity.is_device and entity.disabled:
            # Disabled devices are permanently unavailable
            for item in availability:
                item['value_template'] = '{{ "offline" }}'
        elif not self.settings.advanced.legacy_availability_payload:
            for item in availability:
                item['value_template'] = '{{ value_json.state }}'

        payload['availability'] = availability

    def _apply_command_topics(self, payload: Dict[str, Any], entity):
        prefix = payload.pop('command_topic_prefix', None)
        postfix = payload.pop('command_topic_postfix', None)
        entity_command_topic = command_topic(self.base_topic, entity.name, prefix, postfix)

        if payload.get('command_topic') and not isinstance(payload['command_topic'], str):
            payload['command_topic'] = entity_command_topic

        if payload.get('set_position_topic'):
            payload['set_position_topic'] = entity_command_topic

        for flag, default_suffix in COMMAND_TOPIC_SUFFIXES.items():
            value = payload.get(flag)
            if not value:
                continue
            suffix = value if isinstance(value, str) else default_suffix
            payload[flag] = command_topic(self.base_topic, entity.name, prefix, suffix)

    def _apply_overrides(self, payload: Dict[str, Any], object_id: str, entity):
        ha_options = entity.options.get('homeassistant')
        if not isinstance(ha_options, dict):
            return

        def add(overrides: Dict[str, Any], ignore_name: bool):
            for key, value in overrides.items():
                if (ignore_name and key == 'name') or key in OVERRIDE_SKIPPED_KEYS:
                    continue
                if value is None:
                    payload.pop(key, None)
                elif isinstance(value, (int, float, str, bool, list)):
                    payload[key] = copy.deepcopy(value)
                elif key == 'device' and isinstance(value, dict):
                    for device_key, device_value in value.items():
                        payload['device'][device_key] = device_value

        add(ha_options, True)
        if isinstance(ha_options.get(object_id), dict):
            add(ha_options[object_id], False)
