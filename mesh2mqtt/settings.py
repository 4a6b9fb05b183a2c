"""
Settings for mesh2mqtt
Loaded from a YAML file, overridden by environment variables (.env supported)
"""

import os
import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, Optional

import yaml
from dotenv import load_dotenv

logger = logging.getLogger(__name__)

LOG_LEVELS = ['error', 'warning', 'info', 'debug']
LAST_SEEN_FORMATS = ['disable', 'ISO_8601', 'ISO_8601_local', 'epoch']


class ConfigurationError(Exception):
    """Fatal configuration problem, aborts startup"""


@dataclass
class MQTTSettings:
    server: str = 'localhost'
    port: int = 1883
    base_topic: str = 'mesh2mqtt'
    user: Optional[str] = None
    password: Optional[str] = None
    client_id: Optional[str] = None
    keepalive: int = 60


@dataclass
class HomeAssistantSettings:
    discovery_topic: str = 'homeassistant'
    status_topic: str = 'hass/status'
    legacy_entity_attributes: bool = False
    legacy_triggers: bool = False
    rename_on_change: bool = True


@dataclass
class AdvancedSettings:
    output: str = 'json'
    last_seen: str = 'disable'
    cache_state: bool = True
    legacy_availability_payload: bool = False
    log_level: str = 'info'


@dataclass
class AvailabilitySettings:
    enabled: bool = False


@dataclass
class FrontendSettings:
    url: Optional[str] = None


@dataclass
class Settings:
    """Top level settings"""
    mqtt: MQTTSettings = field(default_factory=MQTTSettings)
    homeassistant: HomeAssistantSettings = field(default_factory=HomeAssistantSettings)
    advanced: AdvancedSettings = field(default_factory=AdvancedSettings)
    availability: AvailabilitySettings = field(default_factory=AvailabilitySettings)
    frontend: FrontendSettings = field(default_factory=FrontendSettings)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'Settings':
        """
        Build settings from a configuration mapping

        Unknown keys are ignored with a warning.

        Args:
            data: Parsed configuration

        Returns:
            Settings
        """
        sections = {
            'mqtt': MQTTSettings,
            'homeassistant': HomeAssistantSettings,
            'advanced': AdvancedSettings,
            'availability': AvailabilitySettings,
            'frontend': FrontendSettings,
        }

        kwargs = {}
        for name, section_cls in sections.items():
            values = data.get(name) or {}
            known = section_cls.__dataclass_fields__
            unknown = set(values) - set(known)
            if unknown:
                logger.warning(f"Ignoring unknown '{name}' settings: {', '.join(sorted(unknown))}")
            kwargs[name] = section_cls(**{k: v for k, v in values.items() if k in known})

        return cls(**kwargs)

    @classmethod
    def load(cls, path: Optional[str] = None) -> 'Settings':
        """
        Load settings from YAML file and environment

        Args:
            path: Path to configuration.yaml (optional)

        Returns:
            Settings
        """
        load_dotenv()

        data: Dict[str, Any] = {}
        if path:
            config_path = Path(path)
            if not config_path.exists():
                raise ConfigurationError(f"Configuration file not found: {config_path}")
            try:
                with open(config_path) as f:
                    data = yaml.safe_load(f) or {}
            except yaml.YAMLError as e:
                raise ConfigurationError(f"Invalid YAML in {config_path}: {e}")

        settings = cls.from_dict(data)
        settings.apply_env()
        return settings

    def apply_env(self):
        """Override settings from environment variables"""
        mqtt = self.mqtt
        mqtt.server = os.getenv('MQTT_HOST', mqtt.server)
        mqtt.port = int(os.getenv('MQTT_PORT', str(mqtt.port)))
        mqtt.user = os.getenv('MQTT_USERNAME', mqtt.user)
        mqtt.password = os.getenv('MQTT_PASSWORD', mqtt.password)
        mqtt.base_topic = os.getenv('MQTT_BASE_TOPIC', mqtt.base_topic)
        mqtt.client_id = os.getenv('MQTT_CLIENT_ID', mqtt.client_id)
        self.advanced.log_level = os.getenv('LOG_LEVEL', self.advanced.log_level).lower()

    def validate(self):
        """
        Validate settings

        Raises:
            ConfigurationError: Settings the discovery engine cannot work with
        """
        if self.advanced.output == 'attribute':
            raise ConfigurationError(
                "Home Assistant integration is not possible with attribute output! "
                "Please set `output` to 'json' or 'attribute_and_json'")

        if self.homeassistant.discovery_topic == self.mqtt.base_topic:
            raise ConfigurationError(
                f"'homeassistant.discovery_topic' cannot be equal to the 'mqtt.base_topic' "
                f"(got '{self.mqtt.base_topic}')")

        if self.advanced.last_seen not in LAST_SEEN_FORMATS:
            raise ConfigurationError(
                f"'advanced.last_seen' must be one of {LAST_SEEN_FORMATS}, "
                f"got '{self.advanced.last_seen}'")

        if self.advanced.log_level not in LOG_LEVELS:
            raise ConfigurationError(
                f"'advanced.log_level' must be one of {LOG_LEVELS}, "
                f"got '{self.advanced.log_level}'")

        if not self.advanced.cache_state:
            logger.warning("In order for Home Assistant integration to work properly set `cache_state: true")
