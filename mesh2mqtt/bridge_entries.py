"""
Discovery entries of the bridge entity
Fixed set, not derived from capabilities
"""

from typing import List

from .discovery import DiscoveryEntry
from .settings import LOG_LEVELS


def bridge_entries(base_topic: str) -> List[DiscoveryEntry]:
    """
    Build the bridge's own discovery entries

    Args:
        base_topic: Gateway base topic, used for request topics

    Returns:
        List of discovery entries
    """
    request_topic = f"{base_topic}/bridge/request"

    return [
        # Binary sensors
        DiscoveryEntry('binary_sensor', 'connection_state', {
            'name': 'Connection state',
            'device_class': 'connectivity',
            'entity_category': 'diagnostic',
            'state_topic': True,
            'state_topic_postfix': 'state',
            'value_template': '{{ value_json.state }}',
            'payload_on': 'online',
            'payload_off': 'offline',
            'availability': False,
        }),
        DiscoveryEntry('binary_sensor', 'restart_required', {
            'name': 'Restart required',
            'device_class': 'problem',
            'entity_category': 'diagnostic',
            'enabled_by_default': False,
            'state_topic': True,
            'state_topic_postfix': 'info',
            'value_template': '{{ value_json.restart_required }}',
            'payload_on': True,
            'payload_off': False,
        }),

        # Buttons
        DiscoveryEntry('button', 'restart', {
            'name': 'Restart',
            'device_class': 'restart',
            'state_topic': False,
            'command_topic': f"{request_topic}/restart",
            'payload_press': '',
        }),

        # Selects
        DiscoveryEntry('select', 'log_level', {
            'name': 'Log level',
            'entity_category': 'config',
            'state_topic': True,
            'state_topic_postfix': 'info',
            'value_template': '{{ value_json.log_level | lower }}',
            'command_topic': f"{request_topic}/options",
            'command_template': '{"options": {"advanced": {"log_level": "{{ value }}" } } }',
            'options': LOG_LEVELS,
        }),

        # Sensors
        DiscoveryEntry('sensor', 'version', {
            'name': 'Version',
            'icon': 'mdi:access-point-network',
            'entity_category': 'diagnostic',
            'state_topic': True,
            'state_topic_postfix': 'info',
            'value_template': '{{ value_json.version }}',
        }),
        DiscoveryEntry('sensor', 'coordinator_version', {
            'name': 'Coordinator version',
            'icon': 'mdi:chip',
            'entity_category': 'diagnostic',
            'enabled_by_default': False,
            'state_topic': True,
            'state_topic_postfix': 'info',
            'value_template': '{{ value_json.coordinator.meta.revision }}',
        }),
        DiscoveryEntry('sensor', 'network_map', {
            'name': 'Network map',
            'entity_category': 'diagnostic',
            'enabled_by_default': False,
            'state_topic': True,
            'state_topic_postfix': 'response/networkmap',
            'value_template': "{{ now().strftime('%Y-%m-%d %H:%M:%S') }}",
            'json_attributes_topic': f"{base_topic}/bridge/response/networkmap",
            'json_attributes_template': '{{ value_json.data.value | tojson }}',
        }),
        DiscoveryEntry('sensor', 'permit_join_timeout', {
            'name': 'Permit join timeout',
            'device_class': 'duration',
            'unit_of_measurement': 's',
            'entity_category': 'diagnostic',
            'state_topic': True,
            'state_topic_postfix': 'info',
            'value_template': '{{ iif(value_json.permit_join_timeout is defined, value_json.permit_join_timeout, None) }}',
        }),

        # Switches
        DiscoveryEntry('switch', 'permit_join', {
            'name': 'Permit join',
            'icon': 'mdi:human-greeting-proximity',
            'state_topic': True,
            'state_topic_postfix': 'info',
            'value_template': '{{ value_json.permit_join | lower }}',
            'command_topic': f"{request_topic}/permit_join",
            'payload_on': '{"time": 254}',
            'payload_off': '{"time": 0}',
            'state_on': 'true',
            'state_off': 'false',
        }),
    ]
