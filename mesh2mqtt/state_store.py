"""
Discovery state store
One record per entity: what has been announced, registered triggers and mock properties
"""

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, Iterator, Optional, Set

logger = logging.getLogger(__name__)


@dataclass
class PublishedMessage:
    """Serialized discovery payload and whether the hub has it"""
    payload: str
    published: bool


@dataclass
class EntityRecord:
    """Discovery state of one entity"""
    messages: Dict[str, PublishedMessage] = field(default_factory=dict)
    triggers: Set[str] = field(default_factory=set)
    mock_properties: Dict[str, Any] = field(default_factory=dict)
    discovered: bool = False

    @property
    def topics(self) -> Set[str]:
        return set(self.messages)

    def register_mock_property(self, prop: str, value: Any):
        """Grows only; the first registered default for a property wins"""
        self.mock_properties.setdefault(prop, value)


class DiscoveryStateStore:
    """Records keyed by entity key"""

    def __init__(self):
        self._records: Dict[str, EntityRecord] = {}

    def get(self, key: str) -> EntityRecord:
        """Fetch the record of an entity, creating it on first access"""
        record = self._records.get(key)
        if record is None:
            record = EntityRecord()
            self._records[key] = record
        return record

    def find(self, key: str) -> Optional[EntityRecord]:
        """Fetch the record of an entity without creating it"""
        return self._records.get(key)

    def remove(self, key: str) -> Optional[EntityRecord]:
        return self._records.pop(key, None)

    def __contains__(self, key: str) -> bool:
        return key in self._records

    def __iter__(self) -> Iterator[str]:
        return iter(list(self._records))

    def __len__(self) -> int:
        return len(self._records)

    def mark_unpublished(self):
        """Forget what the hub has; retained messages have to confirm it again"""
        for record in self._records.values():
            for message in record.messages.values():
                message.published = False
