"""
Static lookup tables used by the capability mapper
Keyed by capability name
"""

BINARY_LOOKUP = {
    'activity_led_indicator': {'icon': 'mdi:led-on'},
    'auto_off': {'icon': 'mdi:flash-auto'},
    'battery_low': {'entity_category': 'diagnostic', 'device_class': 'battery'},
    'button_lock': {'entity_category': 'config', 'icon': 'mdi:lock'},
    'calibration': {'entity_category': 'config', 'icon': 'mdi:progress-wrench'},
    'carbon_monoxide': {'device_class': 'carbon_monoxide'},
    'child_lock': {'entity_category': 'config', 'icon': 'mdi:account-lock'},
    'color_sync': {'entity_category': 'config', 'icon': 'mdi:sync-circle'},
    'consumer_connected': {'device_class': 'plug'},
    'contact': {'device_class': 'door'},
    'eco_mode': {'entity_category': 'config', 'icon': 'mdi:leaf'},
    'expose_pin': {'entity_category': 'config', 'icon': 'mdi:pin'},
    'gas': {'device_class': 'gas'},
    'invert_cover': {'entity_category': 'config', 'icon': 'mdi:arrow-left-right'},
    'led_disabled_night': {'entity_category': 'config', 'icon': 'mdi:led-off'},
    'led_indication': {'entity_category': 'config', 'icon': 'mdi:led-on'},
    'motor_reversal': {'entity_category': 'config', 'icon': 'mdi:arrow-left-right'},
    'moving': {'device_class': 'moving'},
    'no_position_support': {'entity_category': 'config', 'icon': 'mdi:minus-circle-outline'},
    'occupancy': {'device_class': 'motion'},
    'power_outage_memory': {'entity_category': 'config', 'icon': 'mdi:memory'},
    'presence': {'device_class': 'presence'},
    'smoke': {'device_class': 'smoke'},
    'sos': {'device_class': 'safety'},
    'tamper': {'device_class': 'tamper'},
    'test': {'entity_category': 'diagnostic', 'icon': 'mdi:test-tube'},
    'vibration': {'device_class': 'vibration'},
    'water_leak': {'device_class': 'moisture'},
}

NUMERIC_LOOKUP = {
    'ac_frequency': {'device_class': 'frequency', 'enabled_by_default': False,
                     'entity_category': 'diagnostic', 'state_class': 'measurement'},
    'angle_x': {'icon': 'mdi:angle-acute'},
    'angle_y': {'icon': 'mdi:angle-acute'},
    'angle_z': {'icon': 'mdi:angle-acute'},
    'aqi': {'device_class': 'aqi', 'state_class': 'measurement'},
    'battery': {'device_class': 'battery', 'entity_category': 'diagnostic', 'state_class': 'measurement'},
    'battery_voltage': {'device_class': 'voltage', 'entity_category': 'diagnostic',
                        'state_class': 'measurement', 'enabled_by_default': True},
    'brightness': {'icon': 'mdi:brightness-5'},
    'co2': {'device_class': 'carbon_dioxide', 'state_class': 'measurement'},
    'current': {'device_class': 'current', 'enabled_by_default': False,
                'entity_category': 'diagnostic', 'state_class': 'measurement'},
    'device_temperature': {'device_class': 'temperature', 'entity_category': 'diagnostic',
                           'state_class': 'measurement'},
    'duration': {'entity_category': 'config', 'icon': 'mdi:timer'},
    'energy': {'device_class': 'energy', 'state_class': 'total_increasing'},
    'humidity': {'device_class': 'humidity', 'state_class': 'measurement'},
    'illuminance': {'device_class': 'illuminance', 'state_class': 'measurement'},
    'linkquality': {'enabled_by_default': False, 'entity_category': 'diagnostic',
                    'icon': 'mdi:signal', 'state_class': 'measurement'},
    'local_temperature': {'device_class': 'temperature', 'state_class': 'measurement'},
    'motion_timeout': {'entity_category': 'config', 'icon': 'mdi:timer'},
    'occupancy_timeout': {'entity_category': 'config', 'icon': 'mdi:timer'},
    'ph': {'device_class': 'ph', 'state_class': 'measurement'},
    'pm10': {'device_class': 'pm10', 'state_class': 'measurement'},
    'pm25': {'device_class': 'pm25', 'state_class': 'measurement'},
    'power': {'device_class': 'power', 'entity_category': 'diagnostic', 'state_class': 'measurement'},
    'pressure': {'device_class': 'atmospheric_pressure', 'state_class': 'measurement'},
    'soil_moisture': {'device_class': 'moisture', 'state_class': 'measurement'},
    'temperature': {'device_class': 'temperature', 'state_class': 'measurement'},
    'voc': {'device_class': 'volatile_organic_compounds', 'state_class': 'measurement'},
    'voltage': {'device_class': 'voltage', 'enabled_by_default': False,
                'entity_category': 'diagnostic', 'state_class': 'measurement'},
    'x_axis': {'icon': 'mdi:axis-x-arrow'},
    'y_axis': {'icon': 'mdi:axis-y-arrow'},
    'z_axis': {'icon': 'mdi:axis-z-arrow'},
}

ENUM_LOOKUP = {
    'action': {'icon': 'mdi:gesture-double-tap'},
    'alarm_humidity': {'entity_category': 'config', 'icon': 'mdi:water-percent-alert'},
    'alarm_temperature': {'entity_category': 'config', 'icon': 'mdi:thermometer-alert'},
    'backlight_mode': {'entity_category': 'config', 'icon': 'mdi:lightbulb'},
    'color_power_on_behavior': {'entity_category': 'config', 'icon': 'mdi:palette'},
    'device_mode': {'entity_category': 'config', 'icon': 'mdi:tune'},
    'effect': {'enabled_by_default': False, 'icon': 'mdi:palette'},
    'force': {'entity_category': 'config', 'icon': 'mdi:valve'},
    'keep_time': {'entity_category': 'config', 'icon': 'mdi:av-timer'},
    'melody': {'entity_category': 'config', 'icon': 'mdi:music-note'},
    'operation_mode': {'entity_category': 'config', 'icon': 'mdi:tune'},
    'power_on_behavior': {'entity_category': 'config', 'icon': 'mdi:power-settings'},
    'power_outage_memory': {'entity_category': 'config', 'icon': 'mdi:power-settings'},
    'sensitivity': {'entity_category': 'config', 'icon': 'mdi:tune'},
    'switch_type': {'entity_category': 'config', 'icon': 'mdi:tune'},
    'volume': {'entity_category': 'config', 'icon': 'mdi:volume-high'},
}

TEXT_LOOKUP = {
    'action': {'icon': 'mdi:gesture-double-tap'},
    'level_config': {'entity_category': 'diagnostic'},
    'programming_mode': {'icon': 'mdi:calendar-clock'},
    'schedule_settings': {'icon': 'mdi:calendar-clock'},
}

# Device classes that are valid without a unit of measurement
UNITLESS_DEVICE_CLASSES = ('aqi', 'ph')

ENERGY_UNITS = ('Wh', 'kWh')

# Properties of a switch capability that get their own entity
SWITCH_DIFFERENT_PROPERTIES = ('valve_detection', 'window_detection', 'auto_lock', 'away_mode')

COVER_OPENING_LOOKUP = ('opening', 'open', 'forward', 'up', 'rising')
COVER_CLOSING_LOOKUP = ('closing', 'close', 'backward', 'back', 'reverse', 'down', 'declining')
COVER_STOPPED_LOOKUP = ('stopped', 'stop', 'pause', 'paused')

FAN_SPEEDS = ('low', 'medium', 'high', '1', '2', '3', '4', '5', '6', '7', '8', '9')
FAN_PRESETS = ('on', 'auto', 'smart')

# Fan models with a fixed speed/preset scheme
FAN_MODEL_OVERRIDES = {
    '99432': {'speeds': ('off', 'low', 'medium', 'high', 'on'), 'presets': ('smart',)},
}

CLIMATE_SETPOINTS = ('occupied_heating_setpoint', 'current_heating_setpoint', 'occupied_cooling_setpoint')

CLIMATE_ACTION_TEMPLATE = (
    "{% set values = {None:None,'idle':'off','heat':'heating','cool':'cooling','fan_only':'fan'} %}"
    "{{ values[value_json.running_state] }}"
)

# Models from before the capability model existed, each with one extra hand-written entry
CLICK_SENSOR_MODELS = (
    'WXKG01LM', 'WXKG11LM', 'WXKG03LM', 'WXKG02LM', 'QBKG04LM', 'QBKG03LM',
    'WXKG12LM', 'WXKG06LM', 'WXKG07LM', 'QBKG11LM', 'QBKG12LM',
)

LEGACY_SENSOR_CLICK = {
    'type': 'sensor',
    'object_id': 'click',
    'mock_properties': [('click', None)],
    'payload': {
        'icon': 'mdi:toggle-switch',
        'value_template': '{{ value_json.click }}',
    },
}

LEGACY_MODEL_ENTRIES = {
    'ICTC-G-1': {
        'type': 'sensor',
        'object_id': 'brightness',
        'mock_properties': [('brightness', None)],
        'payload': {
            'unit_of_measurement': 'brightness',
            'icon': 'mdi:brightness-5',
            'value_template': '{{ value_json.brightness }}',
        },
    },
}
LEGACY_MODEL_ENTRIES.update({model: LEGACY_SENSOR_CLICK for model in CLICK_SENSOR_MODELS})
