"""Configuration loader for wattwatch."""

from __future__ import annotations

from configparser import ConfigParser
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, Mapping, Optional

from . import constants


class ConfigurationError(RuntimeError):
    """Raised when the configuration cannot support the requested operation."""


@dataclass(slots=True)
class ThingSpeakConfig:
    base_url: str = constants.DEFAULT_THINGSPEAK_URL
    channel_id: str = ""
    read_api_key: Optional[str] = None
    write_api_key: Optional[str] = None
    request_timeout_seconds: float = 10.0

    def require_channel(self) -> str:
        if not self.channel_id:
            raise ConfigurationError(
                "ThingSpeak channel_id is not configured ([thingspeak] channel_id)"
            )
        return self.channel_id

    def require_write_key(self) -> str:
        if not self.write_api_key:
            raise ConfigurationError(
                "ThingSpeak write_api_key is not configured ([thingspeak] write_api_key)"
            )
        return self.write_api_key


@dataclass(slots=True)
class PollingConfig:
    interval_seconds: float = 2.0
    initial_delay_seconds: float = 0.0
    window_capacity: int = 50
    sample_ceiling: float = 1.0  # Usage and predicted values must both stay strictly below this


@dataclass(slots=True)
class CommandConfig:
    attempts: int = 15
    spacing_seconds: float = 2.0
    device_fields: Dict[int, int] = field(
        default_factory=lambda: dict(constants.DEFAULT_DEVICE_FIELDS)
    )


@dataclass(slots=True)
class DeviceCatalogConfig:
    names: Dict[int, str] = field(
        default_factory=lambda: dict(constants.DEFAULT_DEVICE_NAMES)
    )
    usage_min: float = 0.5
    usage_max: float = 3.0


@dataclass(slots=True)
class AlertConfig:
    low_balance_percent: float = 15.0
    depleted_balance_percent: float = 0.0


@dataclass(slots=True)
class NotificationConfig:
    transport: str = "log"
    broker_host: str = "localhost"
    broker_port: int = 1883
    username: Optional[str] = None
    password: Optional[str] = None
    topic: str = constants.DEFAULT_NOTIFICATION_TOPIC


@dataclass(slots=True)
class LoggingConfig:
    level: str = "INFO"
    path: Optional[Path] = None
    log_network: bool = False


@dataclass(slots=True)
class HealthConfig:
    enabled: bool = False
    host: str = "127.0.0.1"
    port: int = 0


@dataclass(slots=True)
class WattwatchConfig:
    thingspeak: ThingSpeakConfig
    polling: PollingConfig
    commands: CommandConfig
    devices: DeviceCatalogConfig
    alerts: AlertConfig
    notifications: NotificationConfig
    logging: LoggingConfig
    health: HealthConfig
    raw: ConfigParser
    path: Path


def _format_mapping(values: Mapping[int, object]) -> str:
    return ",".join(f"{key}:{value}" for key, value in values.items())


def _parse_int_mapping(value: str, *, default: Mapping[int, int]) -> Dict[int, int]:
    result: Dict[int, int] = {}
    for item in value.split(","):
        key, sep, target = item.partition(":")
        if not sep:
            continue
        try:
            result[int(key.strip())] = int(target.strip())
        except ValueError:
            continue
    return result or dict(default)


def _parse_name_mapping(value: str, *, default: Mapping[int, str]) -> Dict[int, str]:
    result: Dict[int, str] = {}
    for item in value.split(","):
        key, sep, name = item.partition(":")
        if not sep or not name.strip():
            continue
        try:
            result[int(key.strip())] = name.strip()
        except ValueError:
            continue
    return result or dict(default)


def _safe_float(parser: ConfigParser, section: str, option: str, default: float) -> float:
    try:
        return parser.getfloat(section, option, fallback=default)
    except ValueError:
        return default


def _safe_int(parser: ConfigParser, section: str, option: str, default: int) -> int:
    try:
        return parser.getint(section, option, fallback=default)
    except ValueError:
        return default


def load_config(path: Optional[Path] = None) -> WattwatchConfig:
    """Load configuration from disk, applying defaults where necessary."""

    config_path = path or constants.DEFAULT_CONFIG_PATH
    parser = ConfigParser()
    parser.read_dict(
        {
            "thingspeak": {
                "base_url": constants.DEFAULT_THINGSPEAK_URL,
                "channel_id": "",
                "request_timeout_seconds": "10.0",
            },
            "polling": {
                "interval_seconds": "2.0",
                "initial_delay_seconds": "0.0",
                "window_capacity": "50",
                "sample_ceiling": "1.0",
            },
            "commands": {
                "attempts": "15",
                "spacing_seconds": "2.0",
                "device_fields": _format_mapping(constants.DEFAULT_DEVICE_FIELDS),
            },
            "devices": {
                "names": _format_mapping(constants.DEFAULT_DEVICE_NAMES),
                "usage_min": "0.5",
                "usage_max": "3.0",
            },
            "alerts": {
                "low_balance_percent": "15.0",
                "depleted_balance_percent": "0.0",
            },
            "notifications": {
                "transport": "log",
                "broker_host": "localhost",
                "broker_port": "1883",
                "topic": constants.DEFAULT_NOTIFICATION_TOPIC,
            },
            "logging": {
                "level": "INFO",
                "log_network": "false",
            },
            "health": {
                "enabled": "false",
                "host": "127.0.0.1",
                "port": "0",
            },
        }
    )

    if config_path.exists():
        parser.read(config_path)

    thingspeak = ThingSpeakConfig(
        base_url=parser.get("thingspeak", "base_url").rstrip("/"),
        channel_id=parser.get("thingspeak", "channel_id").strip(),
        read_api_key=parser.get("thingspeak", "read_api_key", fallback=None) or None,
        write_api_key=parser.get("thingspeak", "write_api_key", fallback=None) or None,
        request_timeout_seconds=max(
            0.1, _safe_float(parser, "thingspeak", "request_timeout_seconds", 10.0)
        ),
    )

    polling_defaults = PollingConfig()
    polling = PollingConfig(
        interval_seconds=max(
            0.1,
            _safe_float(
                parser, "polling", "interval_seconds", polling_defaults.interval_seconds
            ),
        ),
        initial_delay_seconds=max(
            0.0,
            _safe_float(
                parser,
                "polling",
                "initial_delay_seconds",
                polling_defaults.initial_delay_seconds,
            ),
        ),
        window_capacity=max(
            1,
            _safe_int(
                parser, "polling", "window_capacity", polling_defaults.window_capacity
            ),
        ),
        sample_ceiling=_safe_float(
            parser, "polling", "sample_ceiling", polling_defaults.sample_ceiling
        ),
    )

    commands = CommandConfig(
        attempts=max(1, _safe_int(parser, "commands", "attempts", 15)),
        spacing_seconds=max(0.0, _safe_float(parser, "commands", "spacing_seconds", 2.0)),
        device_fields=_parse_int_mapping(
            parser.get("commands", "device_fields"),
            default=constants.DEFAULT_DEVICE_FIELDS,
        ),
    )

    usage_min = max(0.0, _safe_float(parser, "devices", "usage_min", 0.5))
    usage_max = max(usage_min, _safe_float(parser, "devices", "usage_max", 3.0))
    devices = DeviceCatalogConfig(
        names=_parse_name_mapping(
            parser.get("devices", "names"), default=constants.DEFAULT_DEVICE_NAMES
        ),
        usage_min=usage_min,
        usage_max=usage_max,
    )

    alerts = AlertConfig(
        low_balance_percent=_safe_float(parser, "alerts", "low_balance_percent", 15.0),
        depleted_balance_percent=_safe_float(
            parser, "alerts", "depleted_balance_percent", 0.0
        ),
    )

    notifications = NotificationConfig(
        transport=parser.get("notifications", "transport").strip().lower() or "log",
        broker_host=parser.get("notifications", "broker_host"),
        broker_port=_safe_int(parser, "notifications", "broker_port", 1883),
        username=parser.get("notifications", "username", fallback=None) or None,
        password=parser.get("notifications", "password", fallback=None) or None,
        topic=parser.get("notifications", "topic"),
    )

    log_path_value = parser.get("logging", "path", fallback="").strip()
    logging_config = LoggingConfig(
        level=parser.get("logging", "level", fallback="INFO"),
        path=Path(log_path_value).expanduser() if log_path_value else None,
        log_network=parser.getboolean("logging", "log_network", fallback=False),
    )

    health = HealthConfig(
        enabled=parser.getboolean("health", "enabled", fallback=False),
        host=parser.get("health", "host", fallback="127.0.0.1"),
        port=_safe_int(parser, "health", "port", 0),
    )

    return WattwatchConfig(
        thingspeak=thingspeak,
        polling=polling,
        commands=commands,
        devices=devices,
        alerts=alerts,
        notifications=notifications,
        logging=logging_config,
        health=health,
        raw=parser,
        path=config_path,
    )


def save_config(config: WattwatchConfig) -> None:
    """Persist the current configuration to disk."""

    config_path = config.path
    config_path.parent.mkdir(parents=True, exist_ok=True)
    with config_path.open("w", encoding="utf-8") as stream:
        config.raw.write(stream)
