"""
Deck protocol commands and replies.

Command lines look like:

    ping
    transport info
    play: speed: 100 loop: true
    clips get: clip id: 2 count: 3

The command name is one word (a trailing ":" is dropped) or one of a few
two-word names. The rest of the line is a sequence of "name: value"
pairs where the name may span several words and the value is exactly one
token.

Replies are either a single status line ("200 ok") or a block:

    205 clips info:
    clip count: 2
    1: Intro 00:00:00:00 00:00:10:00
    2: Outro 00:00:00:00 00:00:05:00
    <blank line>
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field

CRLF = "\r\n"

TWO_WORD_COMMANDS = (
    "device info",
    "slot info",
    "transport info",
    "clips count",
    "clips get",
)

NOTIFY_KEYS = ("transport", "slot", "remote", "configuration")

# Status replies
OK = "200 ok"
UNSUPPORTED = "103 unsupported"
REMOTE_DISABLED = "111 remote control disabled"


@dataclass
class DeckCommand:
    """A parsed command line."""

    name: str
    params: dict[str, str] = field(default_factory=dict)


def parse_command(raw: str) -> DeckCommand | None:
    """
    Parse one command line.

    Parameter names are lower-cased, values are kept verbatim, and the last
    occurrence of a repeated name wins. Trailing tokens that do not form a
    complete "name: value" pair are ignored.

    Returns:
        The parsed command, or None for a blank line.
    """
    trimmed = raw.strip()
    if not trimmed:
        return None

    tokens = trimmed.split()
    lower = trimmed.lower()

    name = next((c for c in TWO_WORD_COMMANDS if lower.startswith(c)), None)
    if name is not None:
        i = len(name.split())
    else:
        name = tokens[0].removesuffix(":").lower()
        i = 1

    params: dict[str, str] = {}
    while i < len(tokens):
        name_parts: list[str] = []
        while i < len(tokens) and not tokens[i].endswith(":"):
            name_parts.append(tokens[i])
            i += 1
        if i >= len(tokens):
            break

        name_parts.append(tokens[i])
        i += 1
        param_name = " ".join(name_parts).removesuffix(":").lower()

        if i >= len(tokens):
            break
        params[param_name] = tokens[i]
        i += 1

    return DeckCommand(name=name, params=params)


# -----------------------------------------------------------------------------
# Typed parameters
# -----------------------------------------------------------------------------


def parse_flag(value: str) -> bool:
    """Deck booleans: only the literal "true" is true."""
    return value == "true"


def parse_int(value: str | None) -> int | None:
    """Parse an integer parameter, or None if absent or not a number."""
    if value is None:
        return None
    try:
        return int(value)
    except ValueError:
        return None


def _optional_flag(params: Mapping[str, str], key: str) -> bool | None:
    value = params.get(key)
    return None if value is None else parse_flag(value)


@dataclass(frozen=True)
class RemoteParams:
    """Parameters of "remote". None means the key was not given."""

    enable: bool | None = None
    override: bool | None = None

    @classmethod
    def from_params(cls, params: Mapping[str, str]) -> "RemoteParams":
        return cls(
            enable=_optional_flag(params, "enable"),
            override=_optional_flag(params, "override"),
        )


@dataclass(frozen=True)
class NotifyParams:
    """Parameters of "notify", restricted to the known subscription keys."""

    flags: dict[str, bool] = field(default_factory=dict)

    @classmethod
    def from_params(cls, params: Mapping[str, str]) -> "NotifyParams":
        return cls({k: parse_flag(v) for k, v in params.items() if k in NOTIFY_KEYS})


@dataclass(frozen=True)
class PlayParams:
    """Parameters of "play"."""

    clip_id: int | None = None
    speed: int = 100
    loop: bool | None = None
    single_clip: bool | None = None

    @classmethod
    def from_params(cls, params: Mapping[str, str]) -> "PlayParams":
        clip_id = None
        if "clip id" in params:
            # Unparseable or zero ids fall back to the first clip
            clip_id = parse_int(params["clip id"]) or 1

        speed = parse_int(params.get("speed"))
        return cls(
            clip_id=clip_id,
            speed=100 if speed is None else speed,
            loop=_optional_flag(params, "loop"),
            single_clip=_optional_flag(params, "single clip"),
        )


@dataclass(frozen=True)
class ClipsGetParams:
    """Parameters of "clips get". A count of 0 means "all remaining"."""

    clip_id: int = 1
    count: int = 0

    @classmethod
    def from_params(cls, params: Mapping[str, str]) -> "ClipsGetParams":
        clip_id = parse_int(params.get("clip id")) or 1
        count = parse_int(params.get("count")) or 0
        return cls(clip_id=max(clip_id, 1), count=count)


@dataclass(frozen=True)
class GotoParams:
    """Parameters of "goto". clip_id is 0 when given but not a number."""

    clip_id: int | None = None

    @classmethod
    def from_params(cls, params: Mapping[str, str]) -> "GotoParams":
        if "clip id" not in params:
            return cls()
        return cls(clip_id=parse_int(params["clip id"]) or 0)


# -----------------------------------------------------------------------------
# Reply builders
# -----------------------------------------------------------------------------


def build_line(text: str = "") -> str:
    """Terminate a single reply line."""
    return text + CRLF


def build_block(code: int, text: str, lines: Iterable[str]) -> str:
    """Build a multi-line reply: header, one line per field, blank line."""
    parts = [build_line(f"{code} {text}:")]
    parts.extend(build_line(line) for line in lines)
    parts.append(CRLF)
    return "".join(parts)


def bool_text(value: bool) -> str:
    """Render a boolean the way the deck protocol spells it."""
    return "true" if value else "false"
