"""
Tests for the discovery reconciler

Tests cover:
1. Publishing passes (idempotence, retraction, publish failures)
2. Config generation (groups, bridge, synthesized entries, overrides, exclusion)
3. Startup reconciliation against retained messages
4. Device triggers
5. Entity state hooks
"""

import json
from unittest.mock import ANY, MagicMock

from mesh2mqtt.capabilities import parse_capabilities
from mesh2mqtt.entities import Device, DeviceDefinition, Scene
from mesh2mqtt.reconciler import DiscoveryReconciler

BULB_LIGHT = 'homeassistant/light/0x000b57fffec6a5b2/light/config'
BULB_EFFECT = 'homeassistant/select/0x000b57fffec6a5b2/effect/config'
BULB_LINKQUALITY = 'homeassistant/sensor/0x000b57fffec6a5b2/linkquality/config'
BULB_TOPICS = {BULB_LIGHT, BULB_EFFECT, BULB_LINKQUALITY}

GROUP_LIGHT = 'homeassistant/light/12250109_1/light/config'
GROUP_SCENE = 'homeassistant/scene/12250109_1/scene_3/config'

BUTTON_TRIGGER = 'homeassistant/device_automation/0x00158d0001e4f1a3/action_single/config'


def retractions(published):
    return [topic for topic, payload in published() if payload == '']


def announcements(published):
    return [topic for topic, payload in published() if payload != '']


# ============================================================================
# Publishing passes
# ============================================================================

class TestDiscoverPass:
    """Test discover() publishing passes"""

    def test_publishes_device_entities(self, reconciler, mqtt_client, published, bulb):
        """Should publish one retained QoS 1 message per entry"""
        reconciler.discover(bulb)

        assert set(announcements(published)) == BULB_TOPICS
        mqtt_client.publish.assert_any_call(BULB_LIGHT, ANY, qos=1, retain=True)
        assert reconciler.is_discovered(bulb)

    def test_payload_content(self, reconciler, payload_of, bulb):
        """Should publish the finalized payload"""
        reconciler.discover(bulb)

        light = payload_of(BULB_LIGHT)
        assert light['command_topic'] == 'z2m/bulb/set'
        assert light['state_topic'] == 'z2m/bulb'
        assert light['unique_id'] == '0x000b57fffec6a5b2_light_z2m'
        assert light['device']['sw_version'] == '2.3.087'

    def test_second_pass_is_idempotent(self, reconciler, mqtt_client, bulb):
        """Should not publish again when nothing changed"""
        reconciler.discover(bulb)
        count = mqtt_client.publish.call_count

        reconciler.discover(bulb)

        assert mqtt_client.publish.call_count == count

    def test_changed_payload_is_republished(self, reconciler, published, bulb):
        """Should republish only the entries that changed"""
        reconciler.discover(bulb)
        bulb.options['homeassistant'] = {'linkquality': {'icon': 'mdi:wifi'}}

        reconciler.discover(bulb)

        assert announcements(published).count(BULB_LINKQUALITY) == 2
        assert announcements(published).count(BULB_LIGHT) == 1

    def test_dropped_topic_is_retracted_once(self, reconciler, published, bulb):
        """Should retract entries that are no longer produced, exactly once"""
        reconciler.discover(bulb)
        bulb.capabilities = bulb.capabilities[:1]

        reconciler.discover(bulb)
        reconciler.discover(bulb)

        assert sorted(retractions(published)) == sorted([BULB_EFFECT, BULB_LINKQUALITY])
        record = reconciler.store.find('0x000b57fffec6a5b2')
        assert record.topics == {BULB_LIGHT}

    def test_failed_publish_is_retried(self, reconciler, mqtt_client, published, bulb):
        """Should leave failed publishes unpublished and retry them next pass"""
        mqtt_client.publish.return_value = False
        reconciler.discover(bulb)

        record = reconciler.store.find('0x000b57fffec6a5b2')
        assert not any(m.published for m in record.messages.values())

        mqtt_client.publish.return_value = True
        reconciler.discover(bulb)

        assert all(m.published for m in record.messages.values())
        assert announcements(published).count(BULB_LIGHT) == 2

    def test_silent_pass_publishes_nothing(self, reconciler, mqtt_client, bulb):
        """Should only seed the store without publishing"""
        reconciler.discover(bulb, publish=False)

        mqtt_client.publish.assert_not_called()
        record = reconciler.store.find('0x000b57fffec6a5b2')
        assert record.topics == BULB_TOPICS
        assert not record.discovered

    def test_interviewing_device_is_skipped(self, reconciler, mqtt_client, bulb):
        """Should not discover devices being interviewed"""
        bulb.interviewing = True
        reconciler.discover(bulb)

        mqtt_client.publish.assert_not_called()
        assert '0x000b57fffec6a5b2' not in reconciler.store

    def test_device_without_definition(self, reconciler, mqtt_client):
        """Should publish nothing for unsupported devices"""
        device = Device(ieee_address='0x0000000000000001', name='unknown')
        reconciler.discover(device)

        mqtt_client.publish.assert_not_called()

    def test_invalid_capability_is_skipped(self, reconciler, published, caplog):
        """Should skip a capability that cannot be mapped and keep the others"""
        device = Device(
            ieee_address='0x0000000000000002',
            name='lock',
            definition=DeviceDefinition(model='X', vendor='Y'),
            capabilities=parse_capabilities([
                {'type': 'lock', 'endpoint': 'l1', 'features': [
                    {'type': 'binary', 'name': 'state', 'property': 'state_l1'}]},
                {'type': 'numeric', 'name': 'battery', 'property': 'battery', 'unit': '%'},
            ]),
        )

        reconciler.discover(device)

        assert announcements(published) == ['homeassistant/sensor/0x0000000000000002/battery/config']
        assert 'Skipping capability' in caplog.text

    def test_mock_properties_are_registered(self, reconciler, bulb):
        """Should register mock properties of all entries"""
        reconciler.discover(bulb)

        record = reconciler.store.find('0x000b57fffec6a5b2')
        assert set(record.mock_properties) == {'state', 'effect', 'linkquality'}


# ============================================================================
# Configs
# ============================================================================

class TestConfigs:
    """Test get_configs()"""

    def test_group_configs(self, reconciler, published, group):
        """Should merge member lights and add scenes"""
        reconciler.discover(group)

        assert set(announcements(published)) == {GROUP_LIGHT, GROUP_SCENE}

    def test_group_scene_payload(self, reconciler, payload_of, group):
        """Should publish the scene recall payload"""
        reconciler.discover(group)

        scene = payload_of(GROUP_SCENE)
        assert scene['payload_on'] == '{ "scene_recall": 3 }'
        assert scene['command_topic'] == 'z2m/living_room/set'
        assert scene['object_id'] == 'living_room_3_movie_night'
        assert 'state_topic' not in scene

    def test_empty_group_retracts(self, reconciler, published, group):
        """Should retract the merged light when the last member leaves"""
        reconciler.discover(group)
        group.members = []
        group.scenes = []

        reconciler.discover(group)

        assert sorted(retractions(published)) == sorted([GROUP_LIGHT, GROUP_SCENE])

    def test_group_members_without_definition_are_ignored(self, reconciler, group):
        """Should only merge members with a definition"""
        group.members.append(Device(ieee_address='0x0000000000000003', name='unknown'))

        configs = reconciler.get_configs(group)

        assert [c.type for c in configs] == ['light', 'scene']

    def test_bridge_configs(self, reconciler, published, bridge):
        """Should publish the bridge entity set"""
        reconciler.discover(bridge)

        topics = announcements(published)
        assert len(topics) == 9
        assert 'homeassistant/switch/12250109_0x00124b0022ee5ab1/permit_join/config' in topics
        assert 'homeassistant/binary_sensor/12250109_0x00124b0022ee5ab1/connection_state/config' in topics

    def test_excluded_entity_retracts_everything(self, reconciler, published, bulb):
        """Should retract all entries of an entity excluded from discovery"""
        reconciler.discover(bulb)
        bulb.options['homeassistant'] = None

        reconciler.discover(bulb)

        assert set(retractions(published)) == BULB_TOPICS

    def test_override_renames_object_id(self, reconciler, published, bulb):
        """Should publish under the overridden object id"""
        bulb.options['homeassistant'] = {'linkquality': {'object_id': 'signal'}}

        reconciler.discover(bulb)

        assert 'homeassistant/sensor/0x000b57fffec6a5b2/signal/config' in announcements(published)
        assert BULB_LINKQUALITY not in announcements(published)

    def test_override_none_removes_entry(self, reconciler, published, bulb):
        """Should drop an entry overridden with None"""
        bulb.options['homeassistant'] = {'effect': None}

        reconciler.discover(bulb)

        assert BULB_EFFECT not in announcements(published)

    def test_get_configs_returns_fresh_copies(self, reconciler, bulb):
        """Should return mutable configs that do not affect later calls"""
        first = reconciler.get_configs(bulb)
        first[0].payload['name'] = 'changed'

        second = reconciler.get_configs(bulb)

        assert second[0].payload['name'] is None

    def test_action_sensor_needs_legacy_triggers(self, reconciler, settings, button):
        """Should drop action and click sensors unless legacy triggers are enabled"""
        assert [c.object_id for c in reconciler.get_configs(button)] == ['battery']

        settings.homeassistant.legacy_triggers = True
        assert [c.object_id for c in reconciler.get_configs(button)] == ['action', 'battery', 'click']

    def test_legacy_option_drops_click(self, reconciler, settings, button):
        """Should drop the click sensor when the device disables legacy"""
        settings.homeassistant.legacy_triggers = True
        button.options['legacy'] = False

        assert [c.object_id for c in reconciler.get_configs(button)] == ['action', 'battery']

    def test_last_seen(self, reconciler, settings, weather_sensor):
        """Should add a timestamp last seen sensor"""
        settings.advanced.last_seen = 'ISO_8601'

        config = next(c for c in reconciler.get_configs(weather_sensor) if c.object_id == 'last_seen')

        assert config.payload['device_class'] == 'timestamp'
        assert config.payload['enabled_by_default'] is False

    def test_ota_entries(self, reconciler, payload_of, bulb):
        """Should add update entries when OTA is supported"""
        bulb.definition.supports_ota = True

        reconciler.discover(bulb)

        update = payload_of('homeassistant/update/0x000b57fffec6a5b2/update/config')
        assert update['command_topic'] == 'z2m/bridge/request/device/ota_update/update'
        assert update['payload_install'] == '{"id": "0x000b57fffec6a5b2"}'
        assert update['latest_version_topic'] == 'z2m/bulb'
        assert update['device_class'] == 'firmware'
        assert payload_of('homeassistant/sensor/0x000b57fffec6a5b2/update_state/config')
        assert payload_of('homeassistant/binary_sensor/0x000b57fffec6a5b2/update_available/config')

    def test_ota_mock_property(self, reconciler, bulb):
        """Should inject the update mock property"""
        bulb.definition.supports_ota = True
        reconciler.discover(bulb)

        message = reconciler.adjust_message_before_publish(bulb, {})

        assert message['update'] == {'state': None}


# ============================================================================
# Retraction helpers
# ============================================================================

class TestRetraction:
    """Test retract_all() and retract_scenes()"""

    def test_remove_entity(self, reconciler, published, bulb):
        """Should retract all topics and delete the record"""
        reconciler.discover(bulb)

        assert reconciler.retract_all(bulb, remove=True) == 3

        assert set(retractions(published)) == BULB_TOPICS
        assert '0x000b57fffec6a5b2' not in reconciler.store

    def test_failed_retraction_keeps_topic(self, reconciler, mqtt_client, bulb):
        """Should keep topics whose retraction failed, and the record of a removed entity"""
        reconciler.discover(bulb)
        mqtt_client.publish.side_effect = lambda topic, payload, **kwargs: topic != BULB_LIGHT

        assert reconciler.retract_all(bulb, remove=True) == 2

        record = reconciler.store.find('0x000b57fffec6a5b2')
        assert record.topics == {BULB_LIGHT}

        mqtt_client.publish.side_effect = None
        assert reconciler.retract_all(bulb, remove=True) == 1
        assert '0x000b57fffec6a5b2' not in reconciler.store

    def test_rename_retracts_before_publishing(self, reconciler, published, bulb):
        """Should retract every old topic before any new topic is published"""
        reconciler.discover(bulb)
        before = len(published())

        bulb.name = 'bulb_2'
        reconciler.retract_all(bulb)
        reconciler.discover(bulb)

        after = published()[before:]
        payloads = [payload for _, payload in after]
        assert payloads[:3] == ['', '', '']
        assert all(payloads[3:])
        assert json.loads(dict(after[3:])[BULB_LIGHT])['state_topic'] == 'z2m/bulb_2'

    def test_retract_scenes_only(self, reconciler, published, group):
        """Should only retract scene topics"""
        reconciler.discover(group)

        assert reconciler.retract_scenes(group) == 1

        assert retractions(published) == [GROUP_SCENE]
        assert reconciler.store.find('12250109_1').topics == {GROUP_LIGHT}

    def test_scene_change_republishes_scenes(self, reconciler, published, group):
        """Should publish new scenes after scene topics were cleared"""
        reconciler.discover(group)
        reconciler.retract_scenes(group)
        group.scenes = [Scene(id=3, name='Movie Night'), Scene(id=4, name='Dinner')]

        reconciler.discover(group)

        assert announcements(published).count(GROUP_SCENE) == 2
        assert 'homeassistant/scene/12250109_1/scene_4/config' in announcements(published)


# ============================================================================
# Startup reconciliation
# ============================================================================

class TestObserveDiscoveryMessages:
    """Test observe_discovery_message()"""

    def message(self, base='z2m', **extra):
        payload = {'availability': [{'topic': f"{base}/bridge/state"}], 'name': None}
        payload.update(extra)
        return json.dumps(payload)

    def test_matching_retained_messages_prevent_republish(self, settings, directory, bulb):
        """Should not republish entries the hub already has"""
        first_client = MagicMock()
        first_client.publish.return_value = True
        DiscoveryReconciler(settings, first_client, directory).discover(bulb)
        retained = [(c.args[0], c.args[1]) for c in first_client.publish.call_args_list]

        client = MagicMock()
        client.publish.return_value = True
        reconciler = DiscoveryReconciler(settings, client, directory)
        reconciler.discover(bulb, publish=False)
        for topic, payload in retained:
            reconciler.observe_discovery_message(topic, payload)
        reconciler.discover(bulb)

        client.publish.assert_not_called()

    def test_unobserved_entries_are_published(self, reconciler, published, bulb):
        """Should publish entries without a retained message after the silent pass"""
        reconciler.discover(bulb, publish=False)
        reconciler.discover(bulb)

        assert set(announcements(published)) == BULB_TOPICS

    def test_foreign_message_is_ignored(self, reconciler, mqtt_client):
        """Should ignore messages of another gateway"""
        reconciler.observe_discovery_message(
            'homeassistant/sensor/0x1111111111111111/battery/config', self.message(base='other'))
        reconciler.observe_discovery_message(
            'homeassistant/light/111_1/light/config', self.message(base='other'))

        mqtt_client.publish.assert_not_called()

    def test_stale_message_of_own_entity_is_retracted(self, reconciler, mqtt_client):
        """Should retract a message for our entity pointing at another base topic"""
        topic = 'homeassistant/sensor/0x000b57fffec6a5b2/linkquality/config'
        reconciler.observe_discovery_message(topic, self.message(base='old_base'))

        mqtt_client.publish.assert_called_once_with(topic, '', qos=1, retain=True)

    def test_unknown_entity_is_retracted(self, reconciler, mqtt_client):
        """Should retract messages of entities that no longer exist"""
        topic = 'homeassistant/sensor/0x9999999999999999/battery/config'
        reconciler.observe_discovery_message(topic, self.message())

        mqtt_client.publish.assert_called_once_with(topic, '', qos=1, retain=True)

    def test_outdated_topic_is_retracted(self, reconciler, mqtt_client, bulb):
        """Should retract topics our entity no longer produces"""
        reconciler.discover(bulb, publish=False)
        topic = 'homeassistant/sensor/0x000b57fffec6a5b2/power/config'

        reconciler.observe_discovery_message(topic, self.message())

        mqtt_client.publish.assert_called_once_with(topic, '', qos=1, retain=True)

    def test_excluded_entity_is_retracted(self, reconciler, mqtt_client, bulb):
        """Should retract messages of excluded entities"""
        reconciler.discover(bulb, publish=False)
        bulb.options['homeassistant'] = None

        reconciler.observe_discovery_message(BULB_LIGHT, self.message())

        mqtt_client.publish.assert_called_once_with(BULB_LIGHT, '', qos=1, retain=True)

    def test_unparseable_payload_is_ignored(self, reconciler, mqtt_client):
        """Should ignore payloads that are not JSON objects"""
        reconciler.observe_discovery_message(BULB_LIGHT, 'not json')
        reconciler.observe_discovery_message(BULB_LIGHT, '')
        reconciler.observe_discovery_message(BULB_LIGHT, '[1, 2]')

        mqtt_client.publish.assert_not_called()

    def test_trigger_message_registers_trigger(self, reconciler, mqtt_client, button):
        """Should register triggers of retained device automation messages"""
        reconciler.observe_discovery_message(BUTTON_TRIGGER, json.dumps({
            'automation_type': 'trigger', 'topic': 'z2m/button/action', 'type': 'action', 'subtype': 'single'}))

        record = reconciler.store.find('0x00158d0001e4f1a3')
        assert 'action_single' in record.triggers
        assert BUTTON_TRIGGER in record.messages
        mqtt_client.publish.assert_not_called()


# ============================================================================
# Device triggers
# ============================================================================

class TestDeviceTriggers:
    """Test device_automation discovery"""

    def test_publish_trigger(self, reconciler, payload_of, button):
        """Should publish trigger discovery once"""
        reconciler.publish_device_trigger(button, 'action', 'single')
        reconciler.publish_device_trigger(button, 'action', 'single')

        payload = payload_of(BUTTON_TRIGGER)
        assert payload['automation_type'] == 'trigger'
        assert payload['type'] == 'action'
        assert payload['subtype'] == 'single'
        assert payload['payload'] == 'single'
        assert payload['topic'] == 'z2m/button/action'
        assert payload['device']['name'] == 'button'
        assert reconciler.mqtt.publish.call_count == 1

    def test_force_republishes(self, reconciler, button):
        """Should republish a known trigger when forced"""
        reconciler.publish_device_trigger(button, 'action', 'single')
        reconciler.publish_device_trigger(button, 'action', 'single', force=True)

        assert reconciler.mqtt.publish.call_count == 2

    def test_disabled_device_automation(self, reconciler, mqtt_client, button):
        """Should not publish triggers when device automation is disabled"""
        button.options['homeassistant'] = {'device_automation': None}

        reconciler.publish_device_trigger(button, 'action', 'single')

        mqtt_client.publish.assert_not_called()

    def test_trigger_topics_survive_passes(self, reconciler, published, button):
        """Should not retract device automation topics in a pass"""
        reconciler.discover(button)
        reconciler.publish_device_trigger(button, 'action', 'single')

        reconciler.discover(button)

        assert BUTTON_TRIGGER not in retractions(published)

    def test_replay_after_rename(self, reconciler, published, payload_of, button):
        """Should replay triggers under the new name"""
        reconciler.publish_device_trigger(button, 'action', 'single')
        reconciler.publish_device_trigger(button, 'action', 'double')
        button.name = 'switch'

        reconciler.retract_all(button)
        reconciler.replay_triggers(button)

        assert payload_of(BUTTON_TRIGGER)['topic'] == 'z2m/switch/action'
        assert len(retractions(published)) == 2


# ============================================================================
# Entity state
# ============================================================================

class TestEntityState:
    """Test state hooks"""

    def test_adjust_injects_mock_properties(self, reconciler, bulb):
        """Should add registered mock properties that are missing"""
        reconciler.discover(bulb)

        message = reconciler.adjust_message_before_publish(bulb, {'state': 'ON'})

        assert message == {'state': 'ON', 'effect': None, 'linkquality': None}

    def test_adjust_copies_hue_saturation(self, reconciler, bulb):
        """Should copy hue and saturation to h and s"""
        message = reconciler.adjust_message_before_publish(bulb, {'color': {'hue': 120, 'saturation': 50}})

        assert message['color'] == {'hue': 120, 'saturation': 50, 'h': 120, 's': 50}

    def test_action_publishes_trigger_and_value(self, reconciler, mqtt_client, button):
        """Should discover the trigger and publish the raw action value"""
        reconciler.handle_state_published(button, {'action': 'single', 'battery': 90})

        mqtt_client.publish.assert_any_call(BUTTON_TRIGGER, ANY, qos=1, retain=True)
        mqtt_client.publish.assert_any_call('z2m/button/action', 'single', qos=0, retain=False)

    def test_empty_action_is_ignored(self, reconciler, mqtt_client, button):
        """Should not publish anything for an empty action"""
        reconciler.handle_state_published(button, {'action': ''})

        mqtt_client.publish.assert_not_called()

    def test_legacy_triggers_clear_action(self, settings, mqtt_client, directory, button):
        """Should publish an empty action with legacy triggers"""
        settings.homeassistant.legacy_triggers = True
        state_cache = MagicMock()
        reconciler = DiscoveryReconciler(settings, mqtt_client, directory, state_cache=state_cache)

        reconciler.handle_state_published(button, {'action': 'single'})

        state_cache.publish.assert_called_once_with(button, {'action': ''})

    def test_endpoint_light_state(self, reconciler, mqtt_client):
        """Should republish endpoint light state without the endpoint suffix"""
        device = Device(
            ieee_address='0x0000000000000004',
            name='dimmer',
            definition=DeviceDefinition(model='X', vendor='Y'),
            capabilities=parse_capabilities([{'type': 'light', 'endpoint': 'l1', 'features': [
                {'type': 'binary', 'name': 'state', 'property': 'state_l1', 'endpoint': 'l1'},
                {'type': 'numeric', 'name': 'brightness', 'property': 'brightness_l1', 'endpoint': 'l1'},
            ]}]),
        )
        reconciler.discover(device)
        mqtt_client.publish.reset_mock()

        reconciler.handle_state_published(device, {'state_l1': 'ON', 'brightness_l1': 10, 'linkquality': 5})

        topic, payload = mqtt_client.publish.call_args.args[:2]
        assert topic == 'z2m/dimmer/l1'
        assert json.loads(payload) == {'state': 'ON', 'brightness': 10}

    def test_groups_are_ignored(self, reconciler, mqtt_client, group):
        """Should only react to device state"""
        reconciler.handle_state_published(group, {'action': 'single'})

        mqtt_client.publish.assert_not_called()
