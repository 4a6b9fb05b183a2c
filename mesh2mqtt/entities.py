"""
Entity model: devices, groups and the bridge, plus the directory interface
"""

import json
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, Iterator, List, Optional, Union

from .capabilities import Capability, parse_capabilities
from .events import EntityStatePublished

logger = logging.getLogger(__name__)

BRIDGE_NAME = 'Mesh2MQTT Bridge'

# Momentary properties, published but never replayed from the cache
NON_CACHED_PROPERTIES = ('action', 'click')


@dataclass
class DeviceDefinition:
    """Supported-device metadata"""
    model: str
    vendor: str
    description: str = ''
    supports_ota: bool = False


@dataclass
class Scene:
    id: int
    name: str


@dataclass
class Device:
    """Mesh device"""
    ieee_address: str
    name: str
    definition: Optional[DeviceDefinition] = None
    capabilities: List[Capability] = field(default_factory=list)
    options: Dict[str, Any] = field(default_factory=dict)
    software_build_id: Optional[str] = None
    interviewing: bool = False
    disabled: bool = False
    scenes: List[Scene] = field(default_factory=list)

    is_device = True
    is_group = False
    is_bridge = False

    @property
    def key_id(self) -> str:
        return self.ieee_address

    @property
    def option_id(self) -> str:
        return str(self.options.get('ID', self.ieee_address))


@dataclass
class Group:
    """Group of devices, exposed as one entity"""
    group_id: int
    name: str
    members: List[Device] = field(default_factory=list)
    options: Dict[str, Any] = field(default_factory=dict)
    scenes: List[Scene] = field(default_factory=list)

    is_device = False
    is_group = True
    is_bridge = False

    @property
    def key_id(self) -> str:
        return str(self.group_id)

    @property
    def option_id(self) -> str:
        return str(self.options.get('ID', self.group_id))


@dataclass
class Bridge:
    """The gateway's own virtual entity"""
    ieee_address: str
    version: str
    coordinator_type: str = 'unknown'
    coordinator_revision: str = 'unknown'
    options: Dict[str, Any] = field(default_factory=dict)
    name: str = 'bridge'

    is_device = False
    is_group = False
    is_bridge = True

    def __post_init__(self):
        self.options.setdefault('ID', f"bridge_{self.ieee_address}")
        self.options.setdefault('homeassistant', {'name': BRIDGE_NAME})

    @property
    def key_id(self) -> str:
        return self.ieee_address

    @property
    def option_id(self) -> str:
        return str(self.options['ID'])


Entity = Union[Device, Group, Bridge]


class EntityDirectory(ABC):
    """Lookup of known entities, implemented by the network layer"""

    @abstractmethod
    def devices(self) -> List[Device]:
        """All devices except the coordinator"""

    @abstractmethod
    def groups(self) -> List[Group]:
        """All groups"""

    @abstractmethod
    def bridge(self) -> Bridge:
        """The bridge entity"""

    @abstractmethod
    def resolve(self, key: Union[str, int]) -> Optional[Entity]:
        """Resolve an ieee address, group id or name to an entity"""

    def entities(self) -> Iterator[Entity]:
        """Iterate all devices and groups"""
        yield from self.devices()
        yield from self.groups()


class InMemoryDirectory(EntityDirectory):
    """Directory backed by plain lists, used by the runner and tests"""

    def __init__(self, bridge: Bridge, devices: List[Device] = None, groups: List[Group] = None):
        self._bridge = bridge
        self._devices: Dict[str, Device] = {d.ieee_address: d for d in devices or []}
        self._groups: Dict[int, Group] = {g.group_id: g for g in groups or []}

    def devices(self) -> List[Device]:
        return list(self._devices.values())

    def groups(self) -> List[Group]:
        return list(self._groups.values())

    def bridge(self) -> Bridge:
        return self._bridge

    def add(self, entity: Entity):
        if entity.is_device:
            self._devices[entity.ieee_address] = entity
        elif entity.is_group:
            self._groups[entity.group_id] = entity

    def remove(self, entity: Entity):
        if entity.is_device:
            self._devices.pop(entity.ieee_address, None)
        elif entity.is_group:
            self._groups.pop(entity.group_id, None)

    def resolve(self, key: Union[str, int]) -> Optional[Entity]:
        if isinstance(key, int) or (isinstance(key, str) and key.isdigit()):
            group = self._groups.get(int(key))
            if group:
                return group

        key = str(key)
        if key in self._devices:
            return self._devices[key]

        for entity in self.entities():
            if entity.name == key:
                return entity
        return None

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'InMemoryDirectory':
        """
        Build a directory from an inventory mapping

        Args:
            data: Dictionary with 'bridge', 'devices' and 'groups' sections

        Returns:
            InMemoryDirectory
        """
        bridge_data = data.get('bridge', {})
        bridge = Bridge(
            ieee_address=bridge_data.get('ieee_address', '0x0000000000000000'),
            version=str(bridge_data.get('version', 'unknown')),
            coordinator_type=bridge_data.get('coordinator_type', 'unknown'),
            coordinator_revision=str(bridge_data.get('coordinator_revision', 'unknown')),
        )

        devices = []
        for item in data.get('devices', []):
            definition = None
            if item.get('definition'):
                definition = DeviceDefinition(**item['definition'])

            devices.append(Device(
                ieee_address=item['ieee_address'],
                name=item.get('friendly_name', item['ieee_address']),
                definition=definition,
                capabilities=parse_capabilities(item.get('exposes', [])),
                options=dict(item.get('options', {})),
                software_build_id=item.get('software_build_id'),
                disabled=item.get('disabled', False),
                scenes=[Scene(**s) for s in item.get('scenes', [])],
            ))

        by_address = {d.ieee_address: d for d in devices}
        groups = []
        for item in data.get('groups', []):
            members = []
            for address in item.get('members', []):
                if address in by_address:
                    members.append(by_address[address])
                else:
                    logger.warning(f"Group '{item['id']}' member '{address}' is not a known device")

            groups.append(Group(
                group_id=int(item['id']),
                name=item.get('friendly_name', f"group_{item['id']}"),
                members=members,
                options=dict(item.get('options', {})),
                scenes=[Scene(**s) for s in item.get('scenes', [])],
            ))

        return cls(bridge, devices, groups)


class StateCache(ABC):
    """Last known state of entities, implemented by the network layer"""

    @abstractmethod
    def get(self, entity: Entity) -> Dict[str, Any]:
        """Cached state of an entity (empty when unknown)"""

    @abstractmethod
    def publish(self, entity: Entity, message: Dict[str, Any]):
        """Merge message into the cache and publish the entity state"""


class MQTTStateCache(StateCache):
    """
    State cache publishing '{base}/{name}' JSON state

    Hooks registered in before_publish receive (entity, message) and may
    modify the message. Published state is emitted as EntityStatePublished.
    """

    def __init__(self, mqtt_client, base_topic: str, bus=None, cache_state: bool = True):
        self.mqtt = mqtt_client
        self.base_topic = base_topic
        self.bus = bus
        self.cache_state = cache_state
        self.before_publish: List[Callable[[Entity, Dict[str, Any]], Any]] = []
        self._states: Dict[str, Dict[str, Any]] = {}

    def get(self, entity: Entity) -> Dict[str, Any]:
        return dict(self._states.get(entity.key_id, {}))

    def set(self, entity: Entity, state: Dict[str, Any]):
        """Seed cached state without publishing"""
        self._states[entity.key_id] = dict(state)

    def publish(self, entity: Entity, message: Dict[str, Any]):
        message = dict(message)
        if self.cache_state:
            state = self._states.setdefault(entity.key_id, {})
            state.update(message)
            message = dict(state)
            for prop in NON_CACHED_PROPERTIES:
                state.pop(prop, None)

        for hook in self.before_publish:
            hook(entity, message)

        self.mqtt.publish(f"{self.base_topic}/{entity.name}", json.dumps(message),
                          qos=0, retain=bool(entity.options.get('retain', False)))

        if self.bus is not None:
            self.bus.emit(EntityStatePublished(entity, message))
