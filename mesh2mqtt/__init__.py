"""
mesh2mqtt - Home Assistant MQTT discovery engine for mesh networks
"""

__version__ = '1.0.0'
