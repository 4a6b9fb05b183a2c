#!/usr/bin/env python3
"""
Main entry point for mesh2mqtt
"""

import argparse
import logging
import os
import signal
import sys
import threading
from collections import Counter
from pathlib import Path

import yaml
from rich import box
from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from . import __version__
from .dispatcher import LifecycleDispatcher
from .entities import InMemoryDirectory, MQTTStateCache
from .events import EventBus, MQTTConnectivity
from .mqtt_client import MQTTClient
from .reconciler import DiscoveryReconciler
from .settings import ConfigurationError, Settings

logger = logging.getLogger(__name__)

console = Console()


def setup_logging(settings: Settings):
    """Configure root logging from LOG_LEVEL or advanced.log_level"""
    level = os.getenv('LOG_LEVEL', settings.advanced.log_level).upper()
    logging.basicConfig(
        level=getattr(logging, level, logging.INFO),
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
    )


def load_inventory(path: str) -> InMemoryDirectory:
    """
    Load devices, groups and bridge info from a YAML inventory

    Args:
        path: Inventory file path

    Returns:
        InMemoryDirectory
    """
    inventory_path = Path(path)
    if not inventory_path.exists():
        raise ConfigurationError(f"Inventory file not found: {inventory_path}")

    try:
        with open(inventory_path) as f:
            data = yaml.safe_load(f) or {}
    except yaml.YAMLError as e:
        raise ConfigurationError(f"Invalid inventory file {inventory_path}: {e}")

    return InMemoryDirectory.from_dict(data)


def print_summary(settings: Settings, reconciler: DiscoveryReconciler, directory: InMemoryDirectory):
    """Print broker panel and discovery entities per type"""
    console.print(Panel.fit(
        f"[bold cyan]mesh2mqtt {__version__}[/bold cyan]\n"
        f"[dim]Broker:[/dim] {settings.mqtt.server}:{settings.mqtt.port}\n"
        f"[dim]Base topic:[/dim] {settings.mqtt.base_topic}\n"
        f"[dim]Discovery topic:[/dim] {settings.homeassistant.discovery_topic}",
        border_style="cyan"
    ))

    table = Table(title="Home Assistant entities", box=box.ROUNDED)
    table.add_column("Entity", style="cyan")
    table.add_column("Kind")
    table.add_column("Entities per type", style="green")

    for entity in [directory.bridge(), *directory.devices(), *directory.groups()]:
        kind = 'bridge' if entity.is_bridge else 'device' if entity.is_device else 'group'
        counts = Counter(config.type for config in reconciler.get_configs(entity))
        summary = ', '.join(f"{platform}: {count}" for platform, count in sorted(counts.items()))
        table.add_row(entity.name, kind, summary or "[dim]none[/dim]")

    console.print(table)


def main():
    """Main entry point"""
    parser = argparse.ArgumentParser(prog='mesh2mqtt', description='Home Assistant discovery for mesh networks')
    parser.add_argument('--config', default=os.getenv('CONFIG_PATH', 'configuration.yaml'),
                        help='Settings YAML file')
    parser.add_argument('--inventory', default=os.getenv('INVENTORY_PATH', 'inventory.yaml'),
                        help='Devices and groups YAML file')
    args = parser.parse_args()

    try:
        settings = Settings.load(args.config)
        settings.validate()
    except ConfigurationError as e:
        logging.basicConfig(format='%(asctime)s - %(name)s - %(levelname)s - %(message)s')
        logger.error(f"Invalid configuration: {e}")
        sys.exit(1)

    setup_logging(settings)

    try:
        directory = load_inventory(args.inventory)
    except ConfigurationError as e:
        logger.error(str(e))
        sys.exit(1)

    bus = EventBus()
    mqtt_client = MQTTClient(settings.mqtt)
    state_cache = MQTTStateCache(mqtt_client, settings.mqtt.base_topic, bus, settings.advanced.cache_state)
    reconciler = DiscoveryReconciler(settings, mqtt_client, directory, state_cache=state_cache)
    state_cache.before_publish.append(reconciler.adjust_message_before_publish)
    dispatcher = LifecycleDispatcher(settings, reconciler, directory, bus, mqtt_client, state_cache)

    print_summary(settings, reconciler, directory)

    stop_event = threading.Event()

    def signal_handler(signum, frame):
        """Handle shutdown signals"""
        logger.info(f"Received signal {signum}, shutting down...")
        stop_event.set()

    signal.signal(signal.SIGINT, signal_handler)
    signal.signal(signal.SIGTERM, signal_handler)

    try:
        if not mqtt_client.connect():
            logger.error("Failed to connect to MQTT broker")
            sys.exit(1)

        mqtt_client.on_connection_change = lambda connected: bus.emit(MQTTConnectivity(connected))
        dispatcher.start()
        logger.info("mesh2mqtt started successfully")

        stop_event.wait()
    except Exception as e:
        logger.error(f"Fatal error: {e}", exc_info=True)
        sys.exit(1)
    finally:
        dispatcher.stop()
        mqtt_client.disconnect()
        logger.info("mesh2mqtt stopped")


if __name__ == "__main__":
    main()
