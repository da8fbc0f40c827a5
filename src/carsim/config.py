"""Simulator configuration for carsim."""

from __future__ import annotations

import dataclasses
import os
from collections.abc import Callable
from typing import Any

from carsim._constants import DEFAULT_STATE_KEY, DEFAULT_TICK_INTERVAL
from carsim.exceptions import CarSimConfigError

DEFAULT_CORS_ORIGINS: tuple[str, ...] = (
    "http://localhost:5173",
    "https://car-dashboard-ui.vercel.app",
)


def _env_bool(value: str | None, default: bool) -> bool:
    if value is None:
        return default
    normalized = value.strip().lower()
    if normalized in {"1", "true", "yes", "y", "on"}:
        return True
    if normalized in {"0", "false", "no", "n", "off"}:
        return False
    return default


def _split_origins(value: str) -> tuple[str, ...]:
    return tuple(origin.strip() for origin in value.split(",") if origin.strip())


@dataclasses.dataclass(frozen=True)
class SimulatorConfig:
    """Simulator configuration.

    Parameters
    ----------
    host : str
        Interface the HTTP/websocket server binds to.
    port : int
        TCP port of the HTTP/websocket server.
    tick_interval : float
        Seconds between two simulation ticks.
    state_file : str or None
        Path of the JSON file holding the persisted record. ``None`` keeps
        the record in memory only.
    state_key : str
        Key of the record inside the backend.
    cors_origins : tuple of str
        Browser origins allowed to open the websocket. ``"*"`` allows any
        origin; an empty tuple refuses every browser origin.
    mqtt_enabled : bool
        Mirror the realtime channel on an MQTT broker.
    mqtt_host : str
        MQTT broker host.
    mqtt_port : int
        MQTT broker port.
    mqtt_topic_prefix : str
        Prefix of the state and command topics.
    mqtt_keepalive : int
        MQTT keepalive in seconds.
    """

    host: str = "0.0.0.0"  # noqa: S104
    port: int = 5000
    tick_interval: float = DEFAULT_TICK_INTERVAL
    state_file: str | None = None
    state_key: str = DEFAULT_STATE_KEY
    cors_origins: tuple[str, ...] = DEFAULT_CORS_ORIGINS
    mqtt_enabled: bool = False
    mqtt_host: str = "localhost"
    mqtt_port: int = 1883
    mqtt_topic_prefix: str = "carsim"
    mqtt_keepalive: int = 120

    def __post_init__(self) -> None:
        if self.tick_interval <= 0:
            raise CarSimConfigError(f"tick_interval must be positive, got {self.tick_interval}")
        for name in ("port", "mqtt_port"):
            value = getattr(self, name)
            if not 0 < value < 65536:
                raise CarSimConfigError(f"{name} must be a TCP port, got {value}")
        if not self.state_key:
            raise CarSimConfigError("state_key must be non-empty")
        if not self.mqtt_topic_prefix.strip("/"):
            raise CarSimConfigError("mqtt_topic_prefix must be non-empty")

    @classmethod
    def from_env(cls, **overrides: Any) -> SimulatorConfig:
        """Create configuration from environment variables.

        Reads optional ``CARSIM_*`` variables, plus ``PORT`` and
        ``CORS_ORIGINS`` (comma separated) as commonly set by hosting
        platforms. Explicit keyword arguments override environment values.

        Raises
        ------
        CarSimConfigError
            When a numeric variable cannot be parsed or a value is out of range.
        """
        env = os.environ

        _ENV_CONFIG_MAP: dict[str, tuple[str, Callable[[str], Any]]] = {
            "CARSIM_HOST": ("host", str),
            "PORT": ("port", int),
            "CARSIM_PORT": ("port", int),
            "CARSIM_TICK_INTERVAL": ("tick_interval", float),
            "CARSIM_STATE_FILE": ("state_file", str),
            "CARSIM_STATE_KEY": ("state_key", str),
            "CORS_ORIGINS": ("cors_origins", _split_origins),
            "CARSIM_MQTT_HOST": ("mqtt_host", str),
            "CARSIM_MQTT_PORT": ("mqtt_port", int),
            "CARSIM_MQTT_TOPIC_PREFIX": ("mqtt_topic_prefix", str),
            "CARSIM_MQTT_KEEPALIVE": ("mqtt_keepalive", int),
        }
        config_kwargs: dict[str, Any] = {}
        for env_key, (field_name, convert) in _ENV_CONFIG_MAP.items():
            val = env.get(env_key)
            if val is None or field_name in overrides:
                continue
            try:
                converted = convert(val)
            except ValueError as exc:
                raise CarSimConfigError(f"Invalid value for {env_key}: {val!r}") from exc
            # A blank list keeps the defaults; use "*" to allow any origin.
            if field_name == "cors_origins" and not converted:
                continue
            config_kwargs[field_name] = converted

        if "mqtt_enabled" not in overrides:
            config_kwargs["mqtt_enabled"] = _env_bool(env.get("CARSIM_MQTT_ENABLED"), False)

        config_kwargs.update(overrides)

        return cls(**config_kwargs)
