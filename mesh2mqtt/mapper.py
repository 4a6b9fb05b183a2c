"""
Capability mapper
Maps capability nodes to Home Assistant discovery entries, one rule per capability kind
"""

import logging
from typing import Any, Callable, Dict, List, Optional, Sequence

from .capabilities import ACCESS_STATE, Capability, CapabilityKind
from .discovery import DiscoveryConfig, DiscoveryEntry, MockProperty
from .entities import DeviceDefinition
from . import lookups

logger = logging.getLogger(__name__)


class CapabilityError(Exception):
    """Capability misses something its kind requires, the capability is skipped"""


class UnsupportedCapabilityError(CapabilityError):
    """No mapping rule exists for a capability kind"""


def to_string(value: Any) -> str:
    """String form used in payload literals ('true'/'false' for booleans, no trailing '.0')"""
    if isinstance(value, bool):
        return 'true' if value else 'false'
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    return str(value)


def property_without_endpoint(feature: Capability) -> str:
    if feature.endpoint and feature.property.endswith(f"_{feature.endpoint}"):
        return feature.property[:-len(feature.endpoint) - 1]
    return feature.property


def _label(capability: Capability, endpoint: Optional[str]) -> str:
    return f"{capability.label} {endpoint}" if endpoint else capability.label


def _capitalize(text: Optional[str]) -> Optional[str]:
    return text[0].upper() + text[1:] if text else None


class CapabilityMapper:
    """
    Translate capabilities of one kind into discovery entries

    A device passes exactly one capability. A group passes one capability per
    member for the mergeable kinds (light, switch, lock, cover).
    """

    def __init__(self):
        self._handlers: Dict[CapabilityKind, Callable] = {
            CapabilityKind.LIGHT: self._map_light,
            CapabilityKind.SWITCH: self._map_switch,
            CapabilityKind.CLIMATE: self._map_climate,
            CapabilityKind.LOCK: self._map_lock,
            CapabilityKind.COVER: self._map_cover,
            CapabilityKind.FAN: self._map_fan,
            CapabilityKind.BINARY: self._map_binary,
            CapabilityKind.NUMERIC: self._map_numeric,
            CapabilityKind.ENUM: self._map_enum,
            CapabilityKind.TEXT: self._map_text,
            CapabilityKind.COMPOSITE: self._map_text,
            CapabilityKind.LIST: self._map_text,
        }
        missing = set(CapabilityKind) - set(self._handlers)
        if missing:
            raise UnsupportedCapabilityError(
                f"No mapping rule for capability kinds: {', '.join(sorted(k.value for k in missing))}")

    def map(self, capabilities: Sequence[Capability], is_group: bool = False,
            all_capabilities: Sequence[Capability] = (),
            definition: Optional[DeviceDefinition] = None) -> List[DiscoveryEntry]:
        """
        Map capabilities of the same kind to discovery entries

        Args:
            capabilities: One capability (device) or one per group member
            is_group: Whether the owning entity is a group
            all_capabilities: Full capability list of the device, for cross references
            definition: Device definition, for vendor quirks

        Returns:
            List of immutable discovery entries

        Raises:
            CapabilityError: Required sub-features are missing
            UnsupportedCapabilityError: Unknown capability kind
        """
        if not capabilities:
            return []

        first = capabilities[0]
        if any(c.kind != first.kind for c in capabilities):
            raise CapabilityError("Capabilities of different kinds cannot be mapped together")
        if not is_group and len(capabilities) != 1:
            raise CapabilityError("Multiple capabilities for device not allowed")

        handler = self._handlers.get(first.kind)
        if handler is None:
            raise UnsupportedCapabilityError(f"Unsupported capability kind: '{first.kind}'")

        endpoint = None if is_group else first.endpoint
        configs = handler(capabilities, endpoint, is_group, all_capabilities, definition)

        for config in configs:
            self._post_process(first, config)

        return [DiscoveryEntry(c.type, c.object_id, c.payload, tuple(c.mock_properties)) for c in configs]

    def _post_process(self, capability: Capability, config: DiscoveryConfig):
        payload = config.payload
        if capability.category in ('config', 'diagnostic'):
            payload['entity_category'] = capability.category

        # Read-only platforms cannot be configuration entities
        if config.type in ('sensor', 'binary_sensor') and payload.get('entity_category') == 'config':
            payload['entity_category'] = 'diagnostic'

        if payload.get('device_class'):
            payload['name'] = None

    def _prop(self, feature: Capability, is_group: bool) -> str:
        return property_without_endpoint(feature) if is_group else feature.property

    # ------------------------------------------------------------------
    # Composite kinds
    # ------------------------------------------------------------------

    def _map_light(self, capabilities, endpoint, is_group, all_capabilities, definition):
        first = capabilities[0]
        state = first.find_feature('state')
        if state is None:
            raise CapabilityError("No state found for light")

        def members_with(name):
            return [c for c in capabilities if c.find_feature(name)]

        has_xy = bool(members_with('color_xy'))
        has_hs = bool(members_with('color_hs'))
        has_brightness = bool(members_with('brightness'))
        color_temps = [c.find_feature('color_temp') for c in members_with('color_temp')]

        # Prefer HS when at least one member lists color_hs before color_xy
        prefer_hs = any(
            0 <= c.feature_index('color_hs') < c.feature_index('color_xy')
            for c in capabilities
        )

        payload = {
            'name': _capitalize(endpoint),
            'brightness': has_brightness,
            'schema': 'json',
            'command_topic': True,
            'brightness_scale': 254,
            'command_topic_prefix': endpoint,
            'state_topic_postfix': endpoint,
        }

        color_modes = []
        if has_xy and not prefer_hs:
            color_modes.append('xy')
        if (not has_xy or prefer_hs) and has_hs:
            color_modes.append('hs')
        if color_temps:
            color_modes.append('color_temp')

        if color_modes:
            payload['color_mode'] = True
            payload['supported_color_modes'] = color_modes
        elif has_brightness:
            payload['supported_color_modes'] = ['brightness']
        else:
            payload['supported_color_modes'] = ['onoff']

        if color_temps:
            maxima = [f.value_max for f in color_temps if f.value_max is not None]
            minima = [f.value_min for f in color_temps if f.value_min is not None]
            if maxima:
                payload['max_mireds'] = min(maxima)
            if minima:
                payload['min_mireds'] = max(minima)

        effect = next((c for c in all_capabilities
                       if c.kind == CapabilityKind.ENUM and c.name == 'effect'), None)
        if effect:
            payload['effect'] = True
            payload['effect_list'] = list(effect.values)

        return [DiscoveryConfig(
            type='light',
            object_id=f"light_{endpoint}" if endpoint else 'light',
            payload=payload,
            mock_properties=[MockProperty(self._prop(state, is_group))],
        )]

    def _map_switch(self, capabilities, endpoint, is_group, all_capabilities, definition):
        state = capabilities[0].find_feature('state')
        if state is None:
            raise CapabilityError("No state found for switch")

        prop = self._prop(state, is_group)
        config = DiscoveryConfig(
            type='switch',
            object_id=f"switch_{endpoint}" if endpoint else 'switch',
            payload={
                'name': _capitalize(endpoint),
                'payload_off': state.value_off,
                'payload_on': state.value_on,
                'value_template': f"{{{{ value_json.{prop} }}}}",
                'command_topic': True,
                'command_topic_prefix': endpoint,
            },
            mock_properties=[MockProperty(prop)],
        )

        if prop in lookups.SWITCH_DIFFERENT_PROPERTIES:
            config.object_id = prop
            config.payload['name'] = _label(state, endpoint)
            config.payload['command_topic_postfix'] = prop
            config.payload['state_off'] = state.value_off
            config.payload['state_on'] = state.value_on
            if prop == 'window_detection':
                config.payload['icon'] = 'mdi:window-open-variant'

        return [config]

    def _map_climate(self, capabilities, endpoint, is_group, all_capabilities, definition):
        first = capabilities[0]
        setpoint = next((f for f in first.features if f.name in lookups.CLIMATE_SETPOINTS), None)
        if setpoint is None or setpoint.value_min is None or setpoint.value_max is None:
            raise CapabilityError("No setpoint with min/max found for climate")
        temperature = first.find_feature('local_temperature')
        if temperature is None:
            raise CapabilityError("No temperature found for climate")

        payload = {
            'name': _capitalize(endpoint),
            'state_topic': False,
            'temperature_unit': 'C',
            'min_temp': to_string(setpoint.value_min),
            'max_temp': to_string(setpoint.value_max),
            'current_temperature_topic': True,
            'current_temperature_template': f"{{{{ value_json.{temperature.property} }}}}",
            'command_topic_prefix': endpoint,
        }
        if setpoint.value_step is not None:
            payload['temp_step'] = setpoint.value_step

        mock_properties = []

        mode = first.find_feature('system_mode')
        if mode:
            # 'sleep' is valid for the device but unknown to the hub
            payload['mode_state_topic'] = True
            payload['mode_state_template'] = f"{{{{ value_json.{mode.property} }}}}"
            payload['modes'] = [v for v in mode.values if v != 'sleep']
            payload['mode_command_topic'] = True

        running_state = first.find_feature('running_state')
        if running_state:
            mock_properties.append(MockProperty(running_state.property))
            payload['action_topic'] = True
            payload['action_template'] = lookups.CLIMATE_ACTION_TEMPLATE.replace(
                'running_state', running_state.property)

        cooling = first.find_feature('occupied_cooling_setpoint')
        if cooling and cooling is not setpoint:
            payload['temperature_low_command_topic'] = setpoint.name
            payload['temperature_low_state_template'] = f"{{{{ value_json.{setpoint.property} }}}}"
            payload['temperature_low_state_topic'] = True
            payload['temperature_high_command_topic'] = cooling.name
            payload['temperature_high_state_template'] = f"{{{{ value_json.{cooling.property} }}}}"
            payload['temperature_high_state_topic'] = True
        else:
            payload['temperature_command_topic'] = setpoint.name
            payload['temperature_state_template'] = f"{{{{ value_json.{setpoint.property} }}}}"
            payload['temperature_state_topic'] = True

        fan_mode = first.find_feature('fan_mode')
        if fan_mode:
            payload['fan_modes'] = list(fan_mode.values)
            payload['fan_mode_command_topic'] = True
            payload['fan_mode_state_template'] = f"{{{{ value_json.{fan_mode.property} }}}}"
            payload['fan_mode_state_topic'] = True

        swing_mode = first.find_feature('swing_mode')
        if swing_mode:
            payload['swing_modes'] = list(swing_mode.values)
            payload['swing_mode_command_topic'] = True
            payload['swing_mode_state_template'] = f"{{{{ value_json.{swing_mode.property} }}}}"
            payload['swing_mode_state_topic'] = True

        preset = first.find_feature('preset')
        if preset:
            payload['preset_modes'] = list(preset.values)
            payload['preset_mode_command_topic'] = 'preset'
            payload['preset_mode_value_template'] = f"{{{{ value_json.{preset.property} }}}}"
            payload['preset_mode_state_topic'] = True

        configs = [DiscoveryConfig(
            type='climate',
            object_id=f"climate_{endpoint}" if endpoint else 'climate',
            payload=payload,
            mock_properties=mock_properties,
        )]

        calibration = first.find_feature('local_temperature_calibration')
        if calibration:
            configs.append(self._number_config(
                calibration, endpoint,
                {'entity_category': 'config', 'icon': 'mdi:math-compass'}))

        heating_demand = first.find_feature('pi_heating_demand')
        if heating_demand:
            sensor_payload = {
                'name': _label(heating_demand, endpoint),
                'value_template': f"{{{{ value_json.{heating_demand.property} }}}}",
                'entity_category': 'diagnostic',
                'icon': 'mdi:radiator',
            }
            if heating_demand.unit:
                sensor_payload['unit_of_measurement'] = heating_demand.unit
            configs.append(DiscoveryConfig(
                type='sensor',
                object_id=f"{heating_demand.name}_{endpoint}" if endpoint else heating_demand.name,
                payload=sensor_payload,
                mock_properties=[MockProperty(heating_demand.property)],
            ))
            if heating_demand.settable:
                configs.append(self._number_config(
                    heating_demand, endpoint,
                    {'entity_category': 'config', 'icon': 'mdi:radiator'}))

        return configs

    def _map_lock(self, capabilities, endpoint, is_group, all_capabilities, definition):
        if endpoint:
            raise CapabilityError("Endpoint not supported for lock type")
        state = capabilities[0].find_feature('state')
        if state is None:
            raise CapabilityError("No state found for lock")

        prop = self._prop(state, is_group)
        config = DiscoveryConfig(
            type='lock',
            object_id='lock',
            payload={
                'name': None if prop == 'state' else state.label,
                'command_topic': True,
                'value_template': f"{{{{ value_json.{prop} }}}}",
            },
            mock_properties=[MockProperty(prop)],
        )
        payload = config.payload

        # Hand-mapped for backward compatibility
        if prop == 'keypad_lockout':
            payload['payload_lock'] = state.value_on
            payload['payload_unlock'] = state.value_off
            payload['state_topic'] = True
            config.object_id = 'keypad_lock'
        elif prop == 'child_lock':
            payload['payload_lock'] = state.value_on
            payload['payload_unlock'] = state.value_off
            payload['state_locked'] = 'LOCK'
            payload['state_unlocked'] = 'UNLOCK'
            payload['state_topic'] = True
            config.object_id = 'child_lock'
        else:
            payload['state_locked'] = state.value_on
            payload['state_unlocked'] = state.value_off

        if prop != 'state':
            payload['command_topic_postfix'] = prop

        return [config]

    def _map_cover(self, capabilities, endpoint, is_group, all_capabilities, definition):
        position = next((c.find_feature('position') for c in capabilities if c.find_feature('position')), None)
        tilt = next((c.find_feature('tilt') for c in capabilities if c.find_feature('tilt')), None)

        payload = {
            'name': _capitalize(endpoint),
            'command_topic_prefix': endpoint,
        }

        # Tilt-only covers get no command/state topic, the hub would misreport their state
        if not tilt or position:
            payload['command_topic'] = True
            payload['state_topic'] = not position
            self._apply_cover_direction(payload, all_capabilities)

        if not position and not tilt:
            payload['optimistic'] = True

        if position:
            prop = self._prop(position, is_group)
            payload['position_template'] = f"{{{{ value_json.{prop} }}}}"
            payload['set_position_template'] = f'{{ "{prop}": {{{{ position }}}} }}'
            payload['set_position_topic'] = True
            payload['position_topic'] = True

        if tilt:
            prop = self._prop(tilt, is_group)
            payload['tilt_command_topic'] = True
            payload['tilt_status_topic'] = True
            payload['tilt_status_template'] = f"{{{{ value_json.{prop} }}}}"

        return [DiscoveryConfig(
            type='cover',
            object_id=f"cover_{endpoint}" if endpoint else 'cover',
            payload=payload,
        )]

    def _apply_cover_direction(self, payload: Dict[str, Any], all_capabilities: Sequence[Capability]):
        running = next((c for c in all_capabilities
                        if c.kind == CapabilityKind.BINARY and c.name == 'running'), None)
        if running:
            payload['state_topic'] = True
            payload['value_template'] = (
                "{% if not value_json.running %} stopped {% else %} "
                "{% if value_json.position > 0 %} closing {% else %} opening {% endif %} {% endif %}")
            return

        motor_state = next((c for c in all_capabilities
                            if c.kind == CapabilityKind.ENUM and c.name in ('motor_state', 'moving')
                            and c.access == ACCESS_STATE), None)
        if motor_state:
            def find(vocabulary):
                return next((v for v in motor_state.values if str(v).lower() in vocabulary), None)

            opening = find(lookups.COVER_OPENING_LOOKUP)
            closing = find(lookups.COVER_CLOSING_LOOKUP)
            stopped = find(lookups.COVER_STOPPED_LOOKUP)
            if opening and closing and stopped:
                prop = motor_state.property
                payload['state_topic'] = True
                payload['state_opening'] = opening
                payload['state_closing'] = closing
                payload['state_stopped'] = stopped
                payload['value_template'] = (
                    f"{{% if not value_json.{prop} %}} {stopped} "
                    f"{{% else %}} {{{{ value_json.{prop} }}}} {{% endif %}}")
                return

        payload['payload_open'] = 'OPEN'
        payload['payload_close'] = 'CLOSE'
        payload['payload_stop'] = 'STOP'

    def _map_fan(self, capabilities, endpoint, is_group, all_capabilities, definition):
        if endpoint:
            raise CapabilityError("Endpoint not supported for fan type")

        payload = {
            'name': None,
            'state_topic': True,
            'state_value_template': '{{ value_json.fan_state }}',
            'command_topic': True,
            'command_topic_postfix': 'fan_state',
        }

        mode = capabilities[0].find_feature('mode')
        if mode:
            values = [str(v) for v in mode.values]
            speeds = ['off'] + [s for s in lookups.FAN_SPEEDS if s in values]
            presets = [p for p in lookups.FAN_PRESETS if p in values]

            override = lookups.FAN_MODEL_OVERRIDES.get(definition.model if definition else None)
            if override:
                speeds = list(override['speeds'])
                presets = list(override['presets'])

            allowed = speeds + presets
            unknown = [v for v in values if v not in allowed]
            if unknown:
                raise CapabilityError(f"Unsupported fan modes: {', '.join(unknown)}")

            percent_values = ', '.join(f"'{s}':{i}" for i, s in enumerate(speeds))
            percent_commands = ', '.join(f"{i}:'{s}'" for i, s in enumerate(speeds))

            payload['percentage_state_topic'] = True
            payload['percentage_command_topic'] = True
            payload['percentage_value_template'] = (
                f"{{{{ {{{percent_values}}}[value_json.{mode.property}] | default('None') }}}}")
            payload['percentage_command_template'] = (
                f"{{{{ {{{percent_commands}}}[value] | default('') }}}}")
            payload['speed_range_min'] = 1
            payload['speed_range_max'] = len(speeds) - 1

            if presets:
                preset_list = ', '.join(f"'{p}'" for p in presets)
                payload['preset_mode_state_topic'] = True
                payload['preset_mode_command_topic'] = 'fan_mode'
                payload['preset_mode_value_template'] = (
                    f"{{{{ value_json.{mode.property} if value_json.{mode.property} in [{preset_list}]"
                    f" else 'None' | default('None') }}}}")
                payload['preset_modes'] = presets

        return [DiscoveryConfig(
            type='fan',
            object_id='fan',
            payload=payload,
            mock_properties=[MockProperty('fan_state')],
        )]

    # ------------------------------------------------------------------
    # Generic kinds
    # ------------------------------------------------------------------

    def _map_binary(self, capabilities, endpoint, is_group, all_capabilities, definition):
        capability = capabilities[0]
        prop = capability.property
        lookup = lookups.BINARY_LOOKUP.get(capability.name, {})

        if capability.settable:
            if isinstance(capability.value_on, bool):
                value_template = f"{{% if value_json.{prop} %}} true {{% else %}} false {{% endif %}}"
            else:
                value_template = f"{{{{ value_json.{prop} }}}}"

            payload = {
                'name': _label(capability, endpoint),
                'value_template': value_template,
                'payload_on': to_string(capability.value_on),
                'payload_off': to_string(capability.value_off),
                'command_topic': True,
                'command_topic_prefix': endpoint,
                'command_topic_postfix': prop,
            }
            payload.update(lookup)
            object_id = f"switch_{capability.name}"
            platform = 'switch'
        else:
            payload = {
                'name': _label(capability, endpoint),
                'value_template': f"{{{{ value_json.{prop} }}}}",
                'payload_on': capability.value_on,
                'payload_off': capability.value_off,
            }
            payload.update(lookup)
            object_id = capability.name
            platform = 'binary_sensor'

        return [DiscoveryConfig(
            type=platform,
            object_id=f"{object_id}_{endpoint}" if endpoint else object_id,
            payload=payload,
            mock_properties=[MockProperty(prop)],
        )]

    def _map_numeric(self, capabilities, endpoint, is_group, all_capabilities, definition):
        capability = capabilities[0]
        lookup = dict(lookups.NUMERIC_LOOKUP.get(capability.name, {}))
        extra = {}
        if capability.unit in lookups.ENERGY_UNITS:
            extra = {'device_class': 'energy', 'state_class': 'total_increasing'}

        payload = {
            'name': _label(capability, endpoint),
            'value_template': f"{{{{ value_json.{capability.property} }}}}",
            'enabled_by_default': not capability.settable,
        }
        if capability.unit:
            payload['unit_of_measurement'] = capability.unit
        payload.update(lookup)
        payload.update(extra)
        self._strip_unitless_device_class(payload)

        configs = [DiscoveryConfig(
            type='sensor',
            object_id=f"{capability.name}_{endpoint}" if endpoint else capability.name,
            payload=payload,
            mock_properties=[MockProperty(capability.property)],
        )]

        if capability.settable:
            lookup.pop('state_class', None)
            lookup.pop('enabled_by_default', None)
            configs.append(self._number_config(capability, endpoint, lookup))

        return configs

    def _number_config(self, capability: Capability, endpoint: Optional[str],
                       extra: Dict[str, Any]) -> DiscoveryConfig:
        payload = {
            'name': _label(capability, endpoint),
            'value_template': f"{{{{ value_json.{capability.property} }}}}",
            'command_topic': True,
            'command_topic_prefix': endpoint,
            'command_topic_postfix': capability.property,
        }
        if capability.unit:
            payload['unit_of_measurement'] = capability.unit
        if capability.value_step is not None:
            payload['step'] = capability.value_step
        payload.update(extra)
        if capability.value_min is not None:
            payload['min'] = capability.value_min
        if capability.value_max is not None:
            payload['max'] = capability.value_max
        self._strip_unitless_device_class(payload)

        return DiscoveryConfig(
            type='number',
            object_id=f"{capability.name}_{endpoint}" if endpoint else capability.name,
            payload=payload,
            mock_properties=[MockProperty(capability.property)],
        )

    def _strip_unitless_device_class(self, payload: Dict[str, Any]):
        device_class = payload.get('device_class')
        if device_class and not payload.get('unit_of_measurement') \
                and device_class not in lookups.UNITLESS_DEVICE_CLASSES:
            del payload['device_class']

    def _map_enum(self, capabilities, endpoint, is_group, all_capabilities, definition):
        capability = capabilities[0]
        prop = capability.property
        lookup = lookups.ENUM_LOOKUP.get(capability.name, {})
        name = _label(capability, endpoint)
        configs = []

        if capability.readable:
            payload = {
                'name': name,
                'value_template': f"{{{{ value_json.{prop} }}}}",
                'enabled_by_default': not capability.settable,
            }
            payload.update(lookup)
            configs.append(DiscoveryConfig('sensor', prop, payload, [MockProperty(prop)]))

        if capability.settable:
            payload = {
                'name': name,
                'value_template': f"{{{{ value_json.{prop} }}}}",
                'state_topic': capability.readable,
                'command_topic': True,
                'command_topic_prefix': endpoint,
                'command_topic_postfix': prop,
                'options': [to_string(v) for v in capability.values],
            }
            payload.update(lookup)
            payload.pop('enabled_by_default', None)
            configs.append(DiscoveryConfig('select', prop, payload, [MockProperty(prop)]))

            if len(capability.values) == 1:
                payload = {
                    'name': name,
                    'state_topic': False,
                    'command_topic': True,
                    'command_topic_prefix': endpoint,
                    'command_topic_postfix': prop,
                    'payload_press': to_string(capability.values[0]),
                }
                if 'icon' in lookup:
                    payload['icon'] = lookup['icon']
                configs.append(DiscoveryConfig('button', prop, payload))

        if not configs:
            raise CapabilityError(f"Enum '{prop}' is neither readable nor settable")
        return configs

    def _map_text(self, capabilities, endpoint, is_group, all_capabilities, definition):
        capability = capabilities[0]
        prop = capability.property
        lookup = lookups.TEXT_LOOKUP.get(capability.name, {})
        configs = []

        if capability.readable:
            payload = {
                'name': _label(capability, endpoint),
                'value_template': (
                    f"{{{{ value_json.{prop} | default('',True) | string | truncate(254, True, '', 0) }}}}"),
            }
            payload.update(lookup)
            configs.append(DiscoveryConfig('sensor', prop, payload, [MockProperty(prop)]))

        if capability.kind == CapabilityKind.TEXT and capability.settable:
            payload = {
                'name': _label(capability, endpoint),
                'state_topic': capability.readable,
                'value_template': f"{{{{ value_json.{prop} }}}}",
                'command_topic': True,
                'command_topic_prefix': endpoint,
                'command_topic_postfix': prop,
            }
            payload.update(lookup)
            configs.append(DiscoveryConfig('text', prop, payload, [MockProperty(prop)]))

        if not configs:
            raise CapabilityError(f"{capability.kind.value.capitalize()} '{prop}' is not readable")
        return configs


def legacy_entries(definition: Optional[DeviceDefinition]) -> List[DiscoveryEntry]:
    """Hand-written entries for models from before the capability model"""
    if definition is None or definition.model not in lookups.LEGACY_MODEL_ENTRIES:
        return []
    item = lookups.LEGACY_MODEL_ENTRIES[definition.model]
    return [DiscoveryEntry(
        type=item['type'],
        object_id=item['object_id'],
        payload=item['payload'],
        mock_properties=tuple(MockProperty(p, v) for p, v in item['mock_properties']),
    )]
