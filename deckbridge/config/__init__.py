"""
Configuration management for deckbridge.

This module loads the static device/slot tables reported to deck
controllers from a TOML file, and the playout server location from the
environment.
"""

from __future__ import annotations

import logging
import os
import tomllib
from collections.abc import Mapping
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

logger = logging.getLogger(__name__)

# Path to the config directory
CONFIG_DIR = Path(__file__).parent

# Deck protocol TCP port (fixed by the protocol)
DECK_PORT = 9993

# CasparCG AMCP defaults
DEFAULT_CASPAR_HOST = "127.0.0.1"
DEFAULT_CASPAR_PORT = 5250


@dataclass
class DeviceInfo:
    """Identity reported by "device info" and the connection greeting."""

    protocol_version: str = "1.11"
    model: str = "HyperDeck Studio Mini"
    unique_id: str = "CASPARDECK-0001"
    slot_count: int = 1
    software_version: str = "8.0"
    name: str = "CasparDeck"


@dataclass
class SlotInfo:
    """The single, always-mounted media slot."""

    slot_id: int = 1
    slot_name: str = "slot1"
    device_name: str = "internal"
    status: str = "mounted"
    volume_name: str = "CASPAR"
    recording_time: int = 3600
    video_format: str = "1080p25"
    blocked: bool = False
    remaining_size: int = 500_000_000_000
    total_size: int = 1_000_000_000_000


@dataclass
class ClipDefaults:
    """Values reported for clips when the playout server is silent."""

    file_format: str = "QuickTimeProRes"
    fallback_duration: str = "00:00:10:00"
    fallback_video_format: str = "1080p30"


@dataclass
class DeckConfig:
    """Loaded deck configuration."""

    device: DeviceInfo = field(default_factory=DeviceInfo)
    slot: SlotInfo = field(default_factory=SlotInfo)
    clips: ClipDefaults = field(default_factory=ClipDefaults)


@dataclass
class PlayoutSettings:
    """Where the playout server lives and which layer we drive."""

    host: str = DEFAULT_CASPAR_HOST
    port: int = DEFAULT_CASPAR_PORT
    channel: int = 1
    layer: int = 1

    @classmethod
    def from_env(cls, environ: Mapping[str, str] | None = None) -> "PlayoutSettings":
        """
        Build settings from CASPAR_HOST / CASPAR_PORT.

        Args:
            environ: Mapping to read from (defaults to os.environ).
        """
        env = os.environ if environ is None else environ

        host = env.get("CASPAR_HOST") or DEFAULT_CASPAR_HOST
        port_str = env.get("CASPAR_PORT")
        port = DEFAULT_CASPAR_PORT
        if port_str:
            try:
                port = int(port_str)
            except ValueError:
                logger.warning("Ignoring invalid CASPAR_PORT %r", port_str)

        return cls(host=host, port=port)


def _section(data: dict[str, Any], cls: type, name: str) -> Any:
    """Build a dataclass from a TOML table, ignoring unknown keys."""
    table = data.get(name, {})
    known = {k: v for k, v in table.items() if k in cls.__dataclass_fields__}
    unknown = set(table) - set(known)
    if unknown:
        logger.warning("Unknown keys in [%s]: %s", name, ", ".join(sorted(unknown)))
    return cls(**known)


def load_deck_config(config_path: Path | None = None) -> DeckConfig:
    """
    Load deck configuration from TOML file.

    Args:
        config_path: Path to device.toml. If None, uses default location.

    Returns:
        Loaded DeckConfig instance.
    """
    if config_path is None:
        config_path = CONFIG_DIR / "device.toml"

    logger.debug("Loading deck config from %s", config_path)

    with config_path.open("rb") as f:
        data = tomllib.load(f)

    return DeckConfig(
        device=_section(data, DeviceInfo, "device"),
        slot=_section(data, SlotInfo, "slot"),
        clips=_section(data, ClipDefaults, "clips"),
    )


# Global singleton instance (lazy loaded)
_deck_config: DeckConfig | None = None


def get_deck_config() -> DeckConfig:
    """
    Get the global deck configuration (lazy loaded singleton).

    Returns:
        The DeckConfig instance.
    """
    global _deck_config

    if _deck_config is None:
        _deck_config = load_deck_config()

    return _deck_config


def reload_deck_config() -> DeckConfig:
    """Force reload of deck configuration."""
    global _deck_config
    _deck_config = load_deck_config()
    return _deck_config
