"""wattwatch: ThingSpeak power-usage telemetry and device control service."""

__version__ = "0.1.0"
