"""
MQTT Client for mesh2mqtt
Supports LWT, resubscribe on reconnect and acknowledged publishes
"""

import json
import logging
import threading
import time
from typing import Any, Callable, Dict, Optional

import paho.mqtt.client as mqtt

from .settings import MQTTSettings

logger = logging.getLogger(__name__)

OFFLINE_PAYLOAD = json.dumps({'state': 'offline'})
ONLINE_PAYLOAD = json.dumps({'state': 'online'})


class MQTTClient:
    """MQTT transport used by the discovery engine"""

    def __init__(self, settings: MQTTSettings, publish_timeout: float = 10.0):
        """
        Initialize MQTT client

        Args:
            settings: MQTT connection settings
            publish_timeout: Seconds to wait for a QoS > 0 acknowledgment
        """
        self.settings = settings
        self.base_topic = settings.base_topic
        self.host = settings.server
        self.port = settings.port
        self.publish_timeout = publish_timeout

        client_id = settings.client_id or f"mesh2mqtt_{self.base_topic.replace('/', '_')}"
        self.client = mqtt.Client(mqtt.CallbackAPIVersion.VERSION2, client_id=client_id)

        self.client.on_connect = self._on_connect
        self.client.on_disconnect = self._on_disconnect
        self.client.on_message = self._on_message

        if settings.user and settings.password:
            self.client.username_pw_set(settings.user, settings.password)

        # Last Will and Testament
        self.state_topic = f"{self.base_topic}/bridge/state"
        self.client.will_set(self.state_topic, OFFLINE_PAYLOAD, qos=1, retain=True)

        self.connected = False
        self.subscriptions: Dict[str, Callable[[str, str], None]] = {}
        self.on_connection_change: Optional[Callable[[bool], None]] = None
        self._lock = threading.Lock()

    def connect(self, retry_interval: int = 5, max_retries: int = None) -> bool:
        """
        Connect to MQTT broker with retry logic

        Args:
            retry_interval: Seconds between retry attempts
            max_retries: Maximum number of retries (None for infinite)

        Returns:
            True when connected
        """
        retries = 0
        while not self.connected and (max_retries is None or retries < max_retries):
            try:
                logger.info(f"Connecting to MQTT broker {self.host}:{self.port}")
                self.client.connect(self.host, self.port, keepalive=self.settings.keepalive)
                self.client.loop_start()

                # Wait for connection
                timeout = time.time() + 10
                while not self.connected and time.time() < timeout:
                    time.sleep(0.1)

                if self.connected:
                    logger.info("Successfully connected to MQTT broker")
                    return True

                self.client.loop_stop()
                retries += 1
            except Exception as e:
                logger.error(f"Failed to connect: {e}")
                retries += 1
                if max_retries and retries >= max_retries:
                    raise

            if max_retries is None or retries < max_retries:
                time.sleep(retry_interval)

        return self.connected

    def disconnect(self):
        """Disconnect from MQTT broker"""
        logger.info("Disconnecting from MQTT broker")

        if self.connected:
            self.publish(self.state_topic, OFFLINE_PAYLOAD, qos=1, retain=True)

        self.client.loop_stop()
        self.client.disconnect()
        self._set_connected(False)

    def _set_connected(self, connected: bool):
        changed = connected != self.connected
        self.connected = connected
        if changed and self.on_connection_change:
            try:
                self.on_connection_change(connected)
            except Exception as e:
                logger.error(f"Error in connection change handler: {e}", exc_info=True)

    def _on_connect(self, client, userdata, flags, reason_code, properties):
        """Callback for connection"""
        if reason_code.is_failure:
            logger.error(f"Connection failed with code {reason_code}")
            return

        logger.info("Connected to MQTT broker")
        client.publish(self.state_topic, ONLINE_PAYLOAD, qos=1, retain=True)

        # Resubscribe to all topics
        with self._lock:
            topics = list(self.subscriptions)
        for topic in topics:
            client.subscribe(topic, qos=1)
            logger.debug(f"Resubscribed to {topic}")

        self._set_connected(True)

    def _on_disconnect(self, client, userdata, flags, reason_code, properties):
        """Callback for disconnection"""
        if reason_code.is_failure:
            logger.warning(f"Unexpected disconnection (code {reason_code}), will retry")
        self._set_connected(False)

    def _on_message(self, client, userdata, msg):
        """Callback for incoming messages"""
        try:
            payload = msg.payload.decode('utf-8')
        except UnicodeDecodeError:
            logger.debug(f"Ignoring non UTF-8 message on {msg.topic}")
            return

        with self._lock:
            handlers = list(self.subscriptions.items())

        for pattern, handler in handlers:
            if mqtt.topic_matches_sub(pattern, msg.topic):
                try:
                    handler(msg.topic, payload)
                except Exception as e:
                    logger.error(f"Error in message handler for {msg.topic}: {e}", exc_info=True)

    def subscribe(self, topic: str, handler: Callable[[str, str], None]):
        """
        Subscribe to MQTT topic with handler

        Args:
            topic: MQTT topic pattern (can include wildcards)
            handler: Callback function(topic, payload)
        """
        with self._lock:
            self.subscriptions[topic] = handler

        if self.connected:
            self.client.subscribe(topic, qos=1)
            logger.debug(f"Subscribed to {topic}")

    def unsubscribe(self, topic: str):
        """Drop subscription and its handler"""
        with self._lock:
            self.subscriptions.pop(topic, None)

        if self.connected:
            self.client.unsubscribe(topic)
            logger.debug(f"Unsubscribed from {topic}")

    def publish(self, topic: str, payload: Any, qos: int = 1, retain: bool = False) -> bool:
        """
        Publish message to MQTT

        Args:
            topic: MQTT topic (full path)
            payload: Message payload (will be JSON encoded if dict)
            qos: Quality of Service level
            retain: Retain message on broker

        Returns:
            True when the broker accepted the message
        """
        if not self.connected:
            logger.warning(f"Not connected, cannot publish to {topic}")
            return False

        # Convert to JSON if needed
        if isinstance(payload, (dict, list)):
            payload = json.dumps(payload)
        elif payload is not None and not isinstance(payload, (str, bytes)):
            payload = str(payload)

        result = self.client.publish(topic, payload, qos=qos, retain=retain)
        if result.rc != mqtt.MQTT_ERR_SUCCESS:
            logger.error(f"Failed to publish to {topic}: {result.rc}")
            return False

        if qos > 0:
            try:
                result.wait_for_publish(timeout=self.publish_timeout)
            except (ValueError, RuntimeError) as e:
                logger.error(f"Failed to publish to {topic}: {e}")
                return False
            if not result.is_published():
                logger.warning(f"Publish to {topic} was not acknowledged in time")
                return False

        return True
