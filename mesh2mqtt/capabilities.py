"""
Capability model consumed by the discovery engine

A capability is one typed, access-controlled attribute (or a group of them)
exposed by a device. Trees are supplied by the capability-description library
as JSON and parsed with Capability.from_dict.
"""

import builtins
import logging
from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple

logger = logging.getLogger(__name__)

ACCESS_STATE = 0b001
ACCESS_SET = 0b010
ACCESS_GET = 0b100


class CapabilityKind(Enum):
    """Capability archetypes, one mapping rule each"""
    LIGHT = 'light'
    SWITCH = 'switch'
    CLIMATE = 'climate'
    LOCK = 'lock'
    COVER = 'cover'
    FAN = 'fan'
    BINARY = 'binary'
    NUMERIC = 'numeric'
    ENUM = 'enum'
    TEXT = 'text'
    COMPOSITE = 'composite'
    LIST = 'list'


# Kinds that may be merged across group members
GROUPABLE_KINDS = (CapabilityKind.LIGHT, CapabilityKind.SWITCH,
                   CapabilityKind.LOCK, CapabilityKind.COVER)


@dataclass(frozen=True)
class Capability:
    """Capability node (read-only)"""
    kind: CapabilityKind
    name: str = ''
    property: str = ''
    label: str = ''
    access: int = ACCESS_STATE
    endpoint: Optional[str] = None
    features: Tuple['Capability', ...] = ()
    values: Tuple[Any, ...] = ()
    value_min: Optional[float] = None
    value_max: Optional[float] = None
    value_step: Optional[float] = None
    value_on: Any = None
    value_off: Any = None
    unit: Optional[str] = None
    category: Optional[str] = None

    # The field named "property" shadows the builtin inside the class body
    @builtins.property
    def readable(self) -> bool:
        return bool(self.access & ACCESS_STATE)

    @builtins.property
    def settable(self) -> bool:
        return bool(self.access & ACCESS_SET)

    def find_feature(self, name: str, kind: CapabilityKind = None) -> Optional['Capability']:
        """
        Find a direct feature by name

        Args:
            name: Feature name
            kind: Optional kind the feature must have

        Returns:
            Matching feature or None
        """
        for feature in self.features:
            if feature.name == name and (kind is None or feature.kind == kind):
                return feature
        return None

    def feature_index(self, name: str) -> int:
        """Position of a feature in this node's own feature order, -1 when missing"""
        for index, feature in enumerate(self.features):
            if feature.name == name:
                return index
        return -1

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'Capability':
        """
        Build a capability tree from its JSON description

        Args:
            data: Dictionary with 'type', 'name', 'property', 'access', ...

        Returns:
            Capability

        Raises:
            ValueError: Unknown capability type
        """
        kind = CapabilityKind(data['type'])
        features = tuple(cls.from_dict(f) for f in data.get('features', []))
        name = data.get('name', '')

        return cls(
            kind=kind,
            name=name,
            property=data.get('property', name),
            label=data.get('label') or _label_from_name(name),
            access=data.get('access', ACCESS_STATE),
            endpoint=data.get('endpoint'),
            features=features,
            values=tuple(data.get('values', [])),
            value_min=data.get('value_min'),
            value_max=data.get('value_max'),
            value_step=data.get('value_step'),
            value_on=data.get('value_on'),
            value_off=data.get('value_off'),
            unit=data.get('unit'),
            category=data.get('category'),
        )


def _label_from_name(name: str) -> str:
    if not name:
        return ''
    text = name.replace('_', ' ')
    return text[0].upper() + text[1:]


def parse_capabilities(items: List[Dict[str, Any]]) -> List[Capability]:
    """Parse a list of capability descriptions"""
    return [Capability.from_dict(item) for item in items]
