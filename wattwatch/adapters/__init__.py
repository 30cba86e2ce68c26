"""Adapter modules for external integrations."""

from .mqtt import MQTTClient, MQTTConnectionError
from .thingspeak import ThingSpeakClient, ThingSpeakError

__all__ = [
    "MQTTClient",
    "MQTTConnectionError",
    "ThingSpeakClient",
    "ThingSpeakError",
]
