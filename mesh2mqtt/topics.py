"""
Topic and key codec for Home Assistant discovery
Pure functions, no state
"""

import re
from typing import Optional, Tuple

DISCOVERY_TOPIC_REGEX = r'^{prefix}/(\w+)/([^/]+)/([^/]+)/config$'


def encode_base_topic(base_topic: str) -> str:
    """
    Encode base topic as the concatenation of its decimal character codes

    Used to build stable keys for groups and the bridge, e.g. 'z2m' -> '12250109'
    """
    return ''.join(str(ord(char)) for char in base_topic)


def entity_key(entity, base_topic: str) -> str:
    """
    Get the stable discovery key of an entity

    Args:
        entity: Device, Group or Bridge
        base_topic: Gateway base topic

    Returns:
        ieee address for devices, '{encodedBaseTopic}_{id}' for groups and bridge
    """
    if entity.is_device:
        return entity.ieee_address
    return f"{encode_base_topic(base_topic)}_{entity.key_id}"


def discovery_topic(prefix: str, platform_type: str, key: str, object_id: str) -> str:
    """Build '{prefix}/{type}/{key}/{object_id}/config'"""
    return f"{prefix}/{platform_type}/{key}/{object_id}/config"


def parse_discovery_topic(topic: str, prefix: str) -> Optional[Tuple[str, str, str]]:
    """
    Split a discovery topic into (type, key, object_id)

    Returns:
        Tuple or None when topic is not a discovery config topic
    """
    match = re.match(DISCOVERY_TOPIC_REGEX.format(prefix=re.escape(prefix)), topic)
    if not match:
        return None
    return match.group(1), match.group(2), match.group(3)


def key_to_id(key: str) -> str:
    """Strip the encoded base topic part of a group/bridge key"""
    return key.split('_', 1)[1] if '_' in key else key


def state_topic(base_topic: str, name: str, postfix: Optional[str] = None) -> str:
    """Build '{base}/{name}[/{postfix}]'"""
    topic = f"{base_topic}/{name}"
    if postfix:
        topic += f"/{postfix}"
    return topic


def command_topic(base_topic: str, name: str, prefix: Optional[str] = None,
                  postfix: Optional[str] = None) -> str:
    """Build '{base}/{name}/{prefix/}set[/{postfix}]'"""
    topic = f"{base_topic}/{name}/"
    if prefix:
        topic += f"{prefix}/"
    topic += "set"
    if postfix:
        topic += f"/{postfix}"
    return topic
