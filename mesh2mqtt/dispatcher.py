"""
Lifecycle dispatcher
Translates entity, network and transport events into discovery passes
"""

import itertools
import logging
import threading
from collections import OrderedDict
from typing import Any, Callable, List, Optional, Tuple

from paho.mqtt.client import topic_matches_sub

from .events import (CapabilitiesChanged, DeviceNetworkEvent, EntityAdded, EntityOptionsChanged, EntityRemoved,
                     EntityRenamed, EntityStatePublished, EventBus, GroupMembersChanged, MQTTConnectivity,
                     MQTTMessage, ScenesChanged)
from .reconciler import DiscoveryReconciler
from .settings import Settings

logger = logging.getLogger(__name__)

GRACE_WINDOW = 5
RENAME_DELAY = 2
ONLINE_REPUBLISH_DELAY = 30

DEFAULT_STATUS_TOPIC = 'homeassistant/status'
GLOBAL_KEY = '*'

Scheduler = Callable[[float, Callable[[], None]], Any]


def thread_timer(delay: float, callback: Callable[[], None]) -> threading.Timer:
    """Default scheduler: daemon threading.Timer"""
    timer = threading.Timer(delay, callback)
    timer.daemon = True
    timer.start()
    return timer


class PassQueue:
    """
    Queue of pass intents keyed by (entity key, action)

    An intent that is already queued is coalesced with the new one (the
    newest callback wins). An intent whose pass is running gets exactly one
    follow-up. Drained either by run_pending() or by one worker thread.
    """

    def __init__(self):
        self._pending: 'OrderedDict[Tuple, Callable[[], None]]' = OrderedDict()
        self._in_flight = set()
        self._lock = threading.Lock()
        self._wakeup = threading.Event()
        self._sequence = itertools.count()
        self._worker: Optional[threading.Thread] = None
        self._running = False

    def submit(self, key: str, action: str, callback: Callable[[], None], coalesce: bool = True) -> bool:
        """
        Queue a pass

        Args:
            key: Entity key
            action: Pass type, e.g. 'discover'
            callback: Work to run
            coalesce: False to always queue (e.g. per-message work)

        Returns:
            False when coalesced with an already queued intent
        """
        intent = (key, action) if coalesce else (key, action, next(self._sequence))
        with self._lock:
            coalesced = intent in self._pending
            self._pending[intent] = callback
        self._wakeup.set()
        return not coalesced

    def pending(self) -> int:
        with self._lock:
            return len(self._pending)

    def _take(self):
        with self._lock:
            for intent in self._pending:
                if intent[:2] not in self._in_flight:
                    callback = self._pending.pop(intent)
                    self._in_flight.add(intent[:2])
                    return intent, callback
        return None

    def run_pending(self) -> int:
        """
        Run queued passes in the calling thread until the queue is empty

        Returns:
            Number of passes run
        """
        count = 0
        while True:
            item = self._take()
            if item is None:
                return count

            intent, callback = item
            try:
                callback()
            except Exception as e:
                logger.error(f"Discovery {intent[1]} for '{intent[0]}' failed: {e}", exc_info=True)
            finally:
                with self._lock:
                    self._in_flight.discard(intent[:2])
            count += 1

    def start(self):
        """Drain the queue in a worker thread"""
        if self._running:
            return
        self._running = True
        self._worker = threading.Thread(target=self._run, name='mesh2mqtt-passes', daemon=True)
        self._worker.start()

    def _run(self):
        while self._running:
            self._wakeup.wait(timeout=1.0)
            self._wakeup.clear()
            self.run_pending()

    def stop(self, timeout: float = 5.0):
        self._running = False
        self._wakeup.set()
        if self._worker and self._worker is not threading.current_thread():
            self._worker.join(timeout=timeout)
        self._worker = None


class LifecycleDispatcher:
    """Subscribes to the event bus and runs discovery passes through a PassQueue"""

    def __init__(self, settings: Settings, reconciler: DiscoveryReconciler, directory, bus: EventBus,
                 mqtt_client, state_cache, schedule: Scheduler = None, run_worker: bool = True):
        """
        Initialize dispatcher

        Args:
            settings: mesh2mqtt settings
            reconciler: Discovery reconciler
            directory: Entity directory
            bus: Event bus
            mqtt_client: Transport with subscribe/unsubscribe
            state_cache: Entity state cache
            schedule: schedule(delay, callback) for timers (daemon threading.Timer by default)
            run_worker: Drain queued passes in a worker thread
        """
        self.settings = settings
        self.reconciler = reconciler
        self.directory = directory
        self.bus = bus
        self.mqtt = mqtt_client
        self.state_cache = state_cache
        self.queue = PassQueue()

        self._schedule = schedule or thread_timer
        self._run_worker = run_worker
        self._handles: List[Callable[[], None]] = []
        self._timers: List[Any] = []
        self._started = False
        self._startup_pending = False
        self._grace_active = False
        self._connected = True
        # Work held back until the publishing sweep
        self._deferred: List[Callable[[], None]] = []

        self.discovery_wildcard = f"{settings.homeassistant.discovery_topic}/#"
        self.status_topics = [settings.homeassistant.status_topic]
        if DEFAULT_STATUS_TOPIC not in self.status_topics:
            self.status_topics.append(DEFAULT_STATUS_TOPIC)

    @property
    def grace_active(self) -> bool:
        return self._grace_active

    def start(self):
        """Attach handlers and run the startup reconciliation"""
        if self._started:
            return

        self._handles = [
            self.bus.on(EntityAdded, self.on_entity_added),
            self.bus.on(EntityRemoved, self.on_entity_removed),
            self.bus.on(EntityRenamed, self.on_entity_renamed),
            self.bus.on(GroupMembersChanged, self.on_group_members_changed),
            self.bus.on(EntityOptionsChanged, self.on_entity_options_changed),
            self.bus.on(CapabilitiesChanged, self.on_capabilities_changed),
            self.bus.on(ScenesChanged, self.on_scenes_changed),
            self.bus.on(DeviceNetworkEvent, self.on_network_event),
            self.bus.on(MQTTMessage, self.on_mqtt_message),
            self.bus.on(MQTTConnectivity, self.on_connectivity),
            self.bus.on(EntityStatePublished, self.on_state_published),
        ]
        self._started = True

        for topic in self.status_topics:
            self.mqtt.subscribe(topic, self._emit_message)

        if self._run_worker:
            self.queue.start()

        self._begin_startup()

    def stop(self):
        """Detach handlers, cancel timers and stop the worker"""
        if not self._started:
            return
        self._started = False

        for unsubscribe in self._handles:
            unsubscribe()
        self._handles = []

        for timer in self._timers:
            cancel = getattr(timer, 'cancel', None)
            if cancel:
                cancel()
        self._timers = []
        self._deferred = []

        if self._grace_active:
            self.mqtt.unsubscribe(self.discovery_wildcard)
            self._grace_active = False

        self.queue.stop()
        logger.info("Discovery dispatcher stopped")

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _entities(self) -> list:
        return [self.directory.bridge(), *self.directory.devices(), *self.directory.groups()]

    def _later(self, delay: float, callback: Callable[[], None]):
        def fire():
            if self._started:
                callback()

        self._timers.append(self._schedule(delay, fire))

    def _emit_message(self, topic: str, payload: str):
        self.bus.emit(MQTTMessage(topic, payload))

    def submit_discover(self, entity, action: str = 'discover'):
        """Queue a publishing pass, deferred while the startup reconciliation runs"""
        if self._startup_pending:
            logger.debug(f"Deferring discovery of '{entity.name}' until startup reconciliation finished")
            return
        self.queue.submit(self.reconciler.entity_key(entity), action, lambda: self.reconciler.discover(entity))

    # ------------------------------------------------------------------
    # Startup reconciliation
    # ------------------------------------------------------------------

    def _begin_startup(self):
        self._startup_pending = True
        self.queue.submit(GLOBAL_KEY, 'startup', self._startup_sweep)

    def _startup_sweep(self):
        entities = self._entities()
        logger.info(f"Reconciling {len(entities)} entities with retained Home Assistant discovery")
        self.reconciler.store.mark_unpublished()

        for entity in entities:
            try:
                self.reconciler.discover(entity, publish=False)
            except Exception as e:
                logger.error(f"Failed to reconcile '{entity.name}': {e}", exc_info=True)

        self._grace_active = True
        self.mqtt.subscribe(self.discovery_wildcard, self._emit_message)
        self._later(GRACE_WINDOW, self._end_grace_window)

    def _end_grace_window(self):
        self.queue.submit(GLOBAL_KEY, 'publish', self._publish_sweep)

    def _publish_sweep(self):
        self._grace_active = False
        self.mqtt.unsubscribe(self.discovery_wildcard)
        self._startup_pending = False

        entities = self._entities()
        logger.info(f"Publishing Home Assistant discovery for {len(entities)} entities")
        for entity in entities:
            self.submit_discover(entity)

        deferred, self._deferred = self._deferred, []
        for callback in deferred:
            callback()

    # ------------------------------------------------------------------
    # Event handlers
    # ------------------------------------------------------------------

    def on_entity_added(self, event: EntityAdded):
        self.submit_discover(event.entity)

    def on_entity_removed(self, event: EntityRemoved):
        entity = event.entity
        logger.debug(f"Removing Home Assistant discovery of '{entity.name}'")
        self._defer_during_startup(lambda: self.queue.submit(
            self.reconciler.entity_key(entity), 'remove', lambda: self.reconciler.retract_all(entity, remove=True)))

    def on_entity_renamed(self, event: EntityRenamed):
        entity = event.entity
        logger.info(f"Refreshing Home Assistant discovery of '{event.from_name}' (renamed to '{event.to_name}')")

        if self._startup_pending:
            # Nothing under the new name is published yet; the publishing sweep announces it
            self._defer_during_startup(lambda: self._submit_trigger_replay(entity))
        elif event.homeassistant_rename and self.settings.homeassistant.rename_on_change:
            # Clear first so Home Assistant does not create a numbered duplicate
            self.queue.submit(self.reconciler.entity_key(entity), 'retract',
                              lambda: self.reconciler.retract_all(entity))
            self._later(RENAME_DELAY, lambda: self._submit_rename_pass(entity))
        else:
            self._submit_rename_pass(entity)

    def _defer_during_startup(self, callback: Callable[[], None]):
        """Run callback now, or after the publishing sweep while startup reconciliation is pending"""
        if self._startup_pending:
            self._deferred.append(callback)
        else:
            callback()

    def _submit_trigger_replay(self, entity):
        if entity.is_device:
            self.queue.submit(self.reconciler.entity_key(entity), 'replay_triggers',
                              lambda: self.reconciler.replay_triggers(entity))

    def _submit_rename_pass(self, entity):
        if self._startup_pending:
            self._defer_during_startup(lambda: self._submit_trigger_replay(entity))
            return

        def run():
            self.reconciler.discover(entity)
            if entity.is_device:
                self.reconciler.replay_triggers(entity)

        self.queue.submit(self.reconciler.entity_key(entity), 'rename', run)

    def on_group_members_changed(self, event: GroupMembersChanged):
        self.submit_discover(event.group)

    def on_entity_options_changed(self, event: EntityOptionsChanged):
        self.submit_discover(event.entity)

    def on_capabilities_changed(self, event: CapabilitiesChanged):
        self.submit_discover(event.device)

    def on_scenes_changed(self, event: ScenesChanged):
        entity = event.entity
        if self._startup_pending:
            logger.debug(f"Scenes of '{entity.name}' changed during startup reconciliation")
            return

        logger.debug(f"Refreshing Home Assistant scenes of '{entity.name}'")
        self.queue.submit(self.reconciler.entity_key(entity), 'retract_scenes',
                          lambda: self.reconciler.retract_scenes(entity))
        self._later(RENAME_DELAY, lambda: self.submit_discover(entity, 'scenes'))

    def on_network_event(self, event: DeviceNetworkEvent):
        device = event.device
        if not self.reconciler.is_discovered(device):
            self.submit_discover(device)

    def on_mqtt_message(self, event: MQTTMessage):
        if event.topic in self.status_topics:
            if event.payload.strip().lower() == 'online':
                logger.info(f"Home Assistant is online, republishing state in {ONLINE_REPUBLISH_DELAY}s")
                self._later(ONLINE_REPUBLISH_DELAY, lambda: self.queue.submit(
                    GLOBAL_KEY, 'republish_state', self._republish_states))
            return

        if self._grace_active and topic_matches_sub(self.discovery_wildcard, event.topic):
            self.queue.submit(event.topic, 'observe', lambda: self._observe(event))

    def _observe(self, event: MQTTMessage):
        if self._grace_active:
            self.reconciler.observe_discovery_message(event.topic, event.payload)

    def _republish_states(self):
        for device in self.directory.devices():
            state = self.state_cache.get(device)
            if state:
                self.state_cache.publish(device, state)

    def on_connectivity(self, event: MQTTConnectivity):
        was_connected = self._connected
        self._connected = event.connected
        if event.connected and not was_connected:
            logger.info("Reconnected to MQTT broker, rerunning startup reconciliation")
            self._begin_startup()

    def on_state_published(self, event: EntityStatePublished):
        entity = event.entity
        message = dict(event.message)
        self.queue.submit(self.reconciler.entity_key(entity), 'state',
                          lambda: self.reconciler.handle_state_published(entity, message), coalesce=False)
