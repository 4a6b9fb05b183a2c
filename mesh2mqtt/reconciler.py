"""
Discovery reconciler
Runs discovery passes: maps capabilities, finalizes payloads, publishes what changed
and retracts what is no longer produced
"""

import copy
import json
import logging
import re
from collections import OrderedDict
from typing import Any, Dict, List, Optional

from .bridge_entries import bridge_entries
from .capabilities import GROUPABLE_KINDS, CapabilityKind
from .discovery import DiscoveryConfig, DiscoveryEntry, MockProperty, PayloadFinalizer, serialize, thaw
from .mapper import CapabilityError, CapabilityMapper, UnsupportedCapabilityError, legacy_entries, \
    property_without_endpoint
from .settings import Settings
from .state_store import DiscoveryStateStore, PublishedMessage
from .topics import discovery_topic, encode_base_topic, entity_key, key_to_id, parse_discovery_topic

logger = logging.getLogger(__name__)

DEVICE_AUTOMATION = 'device_automation'
TRIGGER_KEYS = ('action', 'click')


class DiscoveryReconciler:
    """Owner of the discovery state store"""

    def __init__(self, settings: Settings, mqtt_client, directory,
                 store: DiscoveryStateStore = None,
                 mapper: CapabilityMapper = None,
                 finalizer: PayloadFinalizer = None,
                 state_cache=None):
        """
        Initialize reconciler

        Args:
            settings: mesh2mqtt settings
            mqtt_client: Transport with publish(topic, payload, qos, retain) -> bool
            directory: Entity directory
            store: Discovery state store (new one if not provided)
            mapper: Capability mapper
            finalizer: Payload finalizer
            state_cache: Entity state cache, used to republish legacy trigger state
        """
        self.settings = settings
        self.mqtt = mqtt_client
        self.directory = directory
        self.store = store or DiscoveryStateStore()
        self.mapper = mapper or CapabilityMapper()
        self.finalizer = finalizer or PayloadFinalizer(settings, directory)
        self.state_cache = state_cache

    @property
    def base_topic(self) -> str:
        return self.settings.mqtt.base_topic

    @property
    def discovery_prefix(self) -> str:
        return self.settings.homeassistant.discovery_topic

    def entity_key(self, entity) -> str:
        return entity_key(entity, self.base_topic)

    def is_excluded(self, entity) -> bool:
        """Entity was flagged to be excluded from Home Assistant discovery"""
        options = entity.options
        return 'homeassistant' in options and options['homeassistant'] in (None, False)

    def is_discovered(self, entity) -> bool:
        record = self.store.find(self.entity_key(entity))
        return bool(record and record.discovered)

    # ------------------------------------------------------------------
    # Configs
    # ------------------------------------------------------------------

    def get_configs(self, entity) -> List[DiscoveryConfig]:
        """
        Get the discovery configs of an entity, user overrides applied

        Args:
            entity: Device, Group or Bridge

        Returns:
            Mutable configs owned by the caller
        """
        if self.is_excluded(entity):
            return []

        if entity.is_bridge:
            entries = bridge_entries(self.base_topic)
        elif entity.is_device:
            if entity.definition is None:
                return []
            entries = self._device_entries(entity)
        else:
            entries = self._group_entries(entity)

        entries.extend(self._scene_entries(entity))

        if not self.settings.homeassistant.legacy_triggers:
            entries = [e for e in entries if e.object_id not in TRIGGER_KEYS]

        return self._apply_user_configs(entity, entries)

    def _map(self, entity, capabilities, is_group, all_capabilities=(), definition=None) -> List[DiscoveryEntry]:
        try:
            return self.mapper.map(capabilities, is_group, all_capabilities, definition)
        except UnsupportedCapabilityError:
            raise
        except CapabilityError as e:
            names = ', '.join(c.property or c.name or c.kind.value for c in capabilities)
            logger.warning(f"Skipping capability '{names}' of '{entity.name}': {e}")
            return []

    def _device_entries(self, device) -> List[DiscoveryEntry]:
        entries = []
        for capability in device.capabilities:
            entries.extend(self._map(device, [capability], False, device.capabilities, device.definition))

        legacy = legacy_entries(device.definition)
        if 'legacy' in device.options and not device.options['legacy']:
            legacy = [e for e in legacy if e.object_id != 'click']
        entries.extend(legacy)

        last_seen = self.settings.advanced.last_seen
        if last_seen != 'disable':
            payload = {
                'name': 'Last seen',
                'value_template': '{{ value_json.last_seen }}',
                'icon': 'mdi:clock',
                'enabled_by_default': False,
                'entity_category': 'diagnostic',
            }
            if last_seen.startswith('ISO_8601'):
                payload['device_class'] = 'timestamp'
            entries.append(DiscoveryEntry('sensor', 'last_seen', payload, (MockProperty('last_seen'),)))

        if device.definition.supports_ota:
            entries.extend(self._ota_entries(device))

        return entries

    def _ota_entries(self, device) -> List[DiscoveryEntry]:
        update_mock = MockProperty('update', {'state': None})
        return [
            DiscoveryEntry('sensor', 'update_state', {
                'name': 'Update state',
                'icon': 'mdi:update',
                'value_template': "{{ value_json['update']['state'] }}",
                'enabled_by_default': False,
                'entity_category': 'diagnostic',
            }, (update_mock,)),
            DiscoveryEntry('binary_sensor', 'update_available', {
                'name': None,
                'payload_on': True,
                'payload_off': False,
                'value_template': "{{ value_json['update']['state'] == \"available\" }}",
                'enabled_by_default': False,
                'device_class': 'update',
                'entity_category': 'diagnostic',
            }, (MockProperty('update_available'),)),
            DiscoveryEntry('update', 'update', {
                'name': None,
                'state_topic': True,
                'latest_version_topic': True,
                'device_class': 'firmware',
                'entity_category': 'config',
                'command_topic': f"{self.base_topic}/bridge/request/device/ota_update/update",
                'payload_install': f'{{"id": "{device.ieee_address}"}}',
                'value_template': "{{ value_json['update']['installed_version'] }}",
                'latest_version_template': "{{ value_json['update']['latest_version'] }}",
            }, (update_mock,)),
        ]

    def _group_entries(self, group) -> List[DiscoveryEntry]:
        by_key: Dict[str, list] = OrderedDict()
        for member in group.members:
            if member.definition is None:
                continue
            for capability in member.capabilities:
                if capability.kind not in GROUPABLE_KINDS:
                    continue
                key = capability.kind.value
                if capability.kind != CapabilityKind.LIGHT and capability.endpoint:
                    # A member can have several of these, e.g. state and valve_detection switches
                    state = capability.find_feature('state')
                    if state:
                        key += property_without_endpoint(state)
                by_key.setdefault(key, []).append(capability)

        entries = []
        for capabilities in by_key.values():
            entries.extend(self._map(group, capabilities, True))
        return entries

    def _scene_entries(self, entity) -> List[DiscoveryEntry]:
        entries = []
        for scene in getattr(entity, 'scenes', []):
            postfix = re.sub(r"\s+", "_", scene.name).lower()
            entries.append(DiscoveryEntry('scene', f"scene_{scene.id}", {
                'name': scene.name,
                'state_topic': False,
                'command_topic': True,
                'payload_on': f'{{ "scene_recall": {scene.id} }}',
                'object_id_postfix': f"_{postfix}",
            }))
        return entries

    def _apply_user_configs(self, entity, entries: List[DiscoveryEntry]) -> List[DiscoveryConfig]:
        configs = [entry.thaw() for entry in entries]

        ha_options = entity.options.get('homeassistant')
        if isinstance(ha_options, dict):
            configs = [c for c in configs
                       if not (c.object_id in ha_options and ha_options[c.object_id] is None)]
            for config in configs:
                override = ha_options.get(config.object_id)
                if isinstance(override, dict):
                    config.object_id = override.get('object_id') or config.object_id
                    config.type = override.get('type') or config.type

        return configs

    def topic_for(self, config: DiscoveryConfig, entity) -> str:
        return discovery_topic(self.discovery_prefix, config.type, self.entity_key(entity), config.object_id)

    # ------------------------------------------------------------------
    # Passes
    # ------------------------------------------------------------------

    def discover(self, entity, publish: bool = True):
        """
        Run one discovery pass for an entity

        Args:
            entity: Device, Group or Bridge
            publish: False to only seed the state store (startup reconciliation)
        """
        if entity.is_device and entity.interviewing:
            logger.debug(f"Not discovering '{entity.name}', interview in progress")
            return

        record = self.store.get(self.entity_key(entity))
        old_topics = record.topics
        new_topics = set()

        for config in self.get_configs(entity):
            topic = self.topic_for(config, entity)
            if topic in new_topics:
                logger.warning(f"Duplicate discovery config '{topic}' for '{entity.name}', ignoring")
                continue
            new_topics.add(topic)

            payload = serialize(self.finalizer.finalize(config, entity))
            existing = record.messages.get(topic)
            if existing and existing.payload == payload and existing.published:
                logger.debug(f"Skipping discovery of '{topic}', already discovered")
            else:
                published = publish and self._publish(topic, payload)
                record.messages[topic] = PublishedMessage(payload, published)

            for mock in config.mock_properties:
                record.register_mock_property(mock.property, thaw(mock.value))

        if publish:
            for topic in sorted(old_topics - new_topics):
                if self._is_device_automation(topic):
                    continue
                if self._retract(topic):
                    del record.messages[topic]
            record.discovered = True

    def retract_all(self, entity, remove: bool = False) -> int:
        """
        Retract every topic published for an entity

        Args:
            entity: Device, Group or Bridge
            remove: Also delete the entity's record

        Returns:
            Number of retracted topics. Topics whose retraction failed stay
            recorded (and so does a removed entity's record) for a later retry.
        """
        key = self.entity_key(entity)
        record = self.store.find(key)
        if record is None:
            return 0

        retracted = [topic for topic in sorted(record.messages) if self._retract(topic)]
        for topic in retracted:
            del record.messages[topic]

        if remove and not record.messages:
            self.store.remove(key)
        return len(retracted)

    def retract_scenes(self, entity) -> int:
        """Retract only the scene topics of an entity"""
        record = self.store.find(self.entity_key(entity))
        if record is None:
            return 0

        prefix = f"{self.discovery_prefix}/scene/"
        retracted = [t for t in sorted(record.messages) if t.startswith(prefix) and self._retract(t)]
        for topic in retracted:
            del record.messages[topic]
        return len(retracted)

    # ------------------------------------------------------------------
    # Device triggers
    # ------------------------------------------------------------------

    def publish_device_trigger(self, device, key: str, value: str, force: bool = False):
        """
        Publish device_automation discovery for an action value

        Args:
            device: Device that reported the action
            key: 'action' or 'click'
            value: Reported value, e.g. 'single'
            force: Publish even when already registered
        """
        ha_options = device.options.get('homeassistant')
        if self.is_excluded(device) or (
                isinstance(ha_options, dict) and 'device_automation' in ha_options
                and ha_options['device_automation'] is None):
            return

        record = self.store.get(self.entity_key(device))
        trigger = f"{key}_{value}"
        if trigger in record.triggers and not force:
            return

        topic = discovery_topic(self.discovery_prefix, DEVICE_AUTOMATION, self.entity_key(device), trigger)
        payload = serialize({
            'automation_type': 'trigger',
            'type': key,
            'subtype': value,
            'payload': value,
            'topic': f"{self.base_topic}/{device.name}/{key}",
            'device': self.finalizer.device_payload(device),
            'origin': self.finalizer.origin,
        })

        if self._publish(topic, payload):
            record.triggers.add(trigger)
            record.messages[topic] = PublishedMessage(payload, True)

    def replay_triggers(self, device):
        """Republish all registered triggers, e.g. under a new device name"""
        record = self.store.find(self.entity_key(device))
        if record is None:
            return
        for trigger in sorted(record.triggers):
            key, value = trigger.split('_', 1)
            self.publish_device_trigger(device, key, value, force=True)

    # ------------------------------------------------------------------
    # Inbound discovery messages
    # ------------------------------------------------------------------

    def _resolve_key(self, key: str):
        bridge = self.directory.bridge()
        if '_' in key:
            if not key.startswith(f"{encode_base_topic(self.base_topic)}_"):
                return None
            entity_id = key_to_id(key)
            if entity_id == bridge.ieee_address:
                return bridge
            entity = self.directory.resolve(entity_id)
            return entity if entity is not None and entity.is_group else None

        entity = self.directory.resolve(key)
        return entity if entity is not None and entity.is_device else None

    def _reference_topic(self, platform: str, message: Dict[str, Any]) -> Optional[str]:
        if platform == DEVICE_AUTOMATION:
            return message.get('topic')
        availability = message.get('availability')
        if isinstance(availability, list) and availability and isinstance(availability[0], dict):
            return availability[0].get('topic')
        return message.get('state_topic') or message.get('command_topic')

    def observe_discovery_message(self, topic: str, payload: str):
        """
        Handle a (retained) message seen on the discovery topic

        Messages referencing this gateway's base topic seed the state store,
        outdated ones are retracted. Messages of other gateways are ignored.

        Args:
            topic: Full discovery topic
            payload: Raw message payload
        """
        match = parse_discovery_topic(topic, self.discovery_prefix)
        if not match:
            return
        platform, key, object_id = match

        try:
            message = json.loads(payload)
        except (TypeError, ValueError):
            logger.debug(f"Ignoring unparseable discovery message on '{topic}'")
            return
        if not isinstance(message, dict):
            return

        entity = self._resolve_key(key)
        reference = self._reference_topic(platform, message)
        if not isinstance(reference, str):
            return
        if not reference.startswith(f"{self.base_topic}/"):
            if entity is None:
                logger.debug(f"Ignoring discovery message '{topic}' of another gateway")
                return
            logger.debug(f"Clearing stale Home Assistant config '{topic}'")
            self._retract(topic)
            return

        clear = entity is None or (entity.is_device and entity.definition is None)
        record = None if clear else self.store.get(self.entity_key(entity))

        if not clear and platform == DEVICE_AUTOMATION:
            trigger_key = object_id.split('_', 1)[0]
            if message.get('topic') == f"{self.base_topic}/{entity.name}/{trigger_key}":
                record.triggers.add(object_id)
        elif not clear:
            clear = topic not in record.messages

        clear = clear or self.is_excluded(entity)

        if clear:
            logger.debug(f"Clearing outdated Home Assistant config '{topic}'")
            self._retract(topic)
            if record is not None:
                record.messages.pop(topic, None)
        else:
            record.messages[topic] = PublishedMessage(serialize(message), True)

    # ------------------------------------------------------------------
    # Entity state
    # ------------------------------------------------------------------

    def adjust_message_before_publish(self, entity, message: Dict[str, Any]) -> Dict[str, Any]:
        """
        Hook for outgoing entity state: inject mock properties, copy hue/saturation

        Args:
            entity: Entity the state belongs to
            message: State payload, modified in place

        Returns:
            The same message
        """
        record = self.store.find(self.entity_key(entity))
        if record:
            for prop, value in record.mock_properties.items():
                if prop not in message:
                    message[prop] = copy.deepcopy(value)

        color = message.get('color')
        if isinstance(color, dict):
            if 'hue' in color:
                color['h'] = color['hue']
            if 'saturation' in color:
                color['s'] = color['saturation']

        return message

    def handle_state_published(self, entity, message: Dict[str, Any]):
        """
        React to published entity state: endpoint light state, legacy triggers,
        device trigger discovery

        Args:
            entity: Entity the state belongs to
            message: Published state payload
        """
        if not entity.is_device:
            return

        record = self.store.find(self.entity_key(entity))
        if record and record.discovered:
            self._publish_endpoint_light_state(entity, record, message)

        if self.settings.homeassistant.legacy_triggers and self.state_cache is not None:
            for key in TRIGGER_KEYS:
                if message.get(key) not in (None, ''):
                    self.state_cache.publish(entity, {key: ''})

        if entity.definition is not None:
            for key in TRIGGER_KEYS:
                if message.get(key) in (None, ''):
                    continue
                value = str(message[key])
                self.publish_device_trigger(entity, key, value)
                self.mqtt.publish(f"{self.base_topic}/{entity.name}/{key}", value, qos=0, retain=False)

    def _publish_endpoint_light_state(self, entity, record, message: Dict[str, Any]):
        # The hub's JSON light cannot read e.g. state_l1, republish those on {name}/l1
        for topic in sorted(record.messages):
            parsed = parse_discovery_topic(topic, self.discovery_prefix)
            if not parsed:
                continue
            match = re.fullmatch(r'light_(.+)', parsed[2])
            if not match:
                continue

            endpoint = match.group(1)
            suffix = f"_{endpoint}"
            payload = {k[:-len(suffix)]: v for k, v in message.items() if k.endswith(suffix) and len(k) > len(suffix)}
            if payload:
                self.mqtt.publish(f"{self.base_topic}/{entity.name}/{endpoint}",
                                  json.dumps(payload), qos=0, retain=False)

    # ------------------------------------------------------------------
    # Transport
    # ------------------------------------------------------------------

    def _is_device_automation(self, topic: str) -> bool:
        return topic.startswith(f"{self.discovery_prefix}/{DEVICE_AUTOMATION}/")

    def _publish(self, topic: str, payload: str) -> bool:
        published = self.mqtt.publish(topic, payload, qos=1, retain=True)
        if published:
            logger.debug(f"Published discovery '{topic}'")
        else:
            logger.warning(f"Failed to publish discovery '{topic}', will retry on next pass")
        return bool(published)

    def _retract(self, topic: str) -> bool:
        logger.debug(f"Retracting discovery '{topic}'")
        return bool(self.mqtt.publish(topic, '', qos=1, retain=True))
