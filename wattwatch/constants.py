"""Constants used across the wattwatch package."""

from __future__ import annotations

from pathlib import Path

APP_NAME = "wattwatch"
DEFAULT_CONFIG_FILENAME = f"{APP_NAME}.cfg"
DEFAULT_CONFIG_PATH = Path.home() / ".config" / APP_NAME / DEFAULT_CONFIG_FILENAME

DEFAULT_THINGSPEAK_URL = "https://api.thingspeak.com"

# Fixed channel layout: which numbered field carries which quantity.
USAGE_FIELD = "field1"
BALANCE_FIELD = "field2"
PREDICTED_FIELD = "field3"
TEMPERATURE_FIELD = "field6"
FEED_FIELD_NAMES = tuple(f"field{index}" for index in range(1, 9))

DEFAULT_DEVICE_FIELDS = {1: 7, 2: 8}
DEFAULT_DEVICE_NAMES = {1: "Light", 2: "Washing Machine", 3: "Smart TV"}

DEFAULT_REMAINING_BALANCE = 100.0
DEFAULT_BATTERY_TEMPERATURE = 25.0

DEFAULT_NOTIFICATION_TOPIC = f"{APP_NAME}/notifications"
