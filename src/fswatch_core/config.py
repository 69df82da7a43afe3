"""Configuration loading, fix-up and saving for fswatch."""

import dataclasses
import json
import logging
import re
import signal
import tomllib
from pathlib import Path
from typing import Any

import yaml
from pathspec import GitIgnoreSpec

from fswatch_core.models import TriggerConfig, WatchConfig

logger = logging.getLogger(__name__)

CONFIG_JSON = ".fsw.json"
CONFIG_YAML = ".fsw.yml"

# Search order when no explicit path is given
CONFIG_CANDIDATES = (CONFIG_JSON, CONFIG_YAML, ".fsw.yaml", ".fsw.toml")

DEFAULT_DELAY = "100ms"
DEFAULT_SIGNAL = "HUP"
DEFAULT_WATCH_PATHS = ["."]
DEFAULT_WATCH_DEPTH = 5

SIGNAL_NAMES = ("INT", "HUP", "QUIT", "TRAP", "TERM", "KILL")

_DURATION_UNITS = {
    "ns": 1e-9,
    "us": 1e-6,
    "µs": 1e-6,
    "μs": 1e-6,
    "ms": 1e-3,
    "s": 1.0,
    "m": 60.0,
    "h": 3600.0,
}
_DURATION_TOKEN = r"(\d+\.?\d*|\.\d+)(ns|us|µs|μs|ms|s|m|h)"
_DURATION_RE = re.compile(rf"([-+]?)((?:{_DURATION_TOKEN})+)")


class ConfigError(ValueError):
    """Raised when a configuration document cannot be turned into a valid WatchConfig."""


def _build_signal_table() -> dict[str, signal.Signals]:
    table: dict[str, signal.Signals] = {}
    for name in SIGNAL_NAMES:
        sig = getattr(signal, f"SIG{name}", None)
        if sig is None:
            # e.g. SIGHUP on Windows
            continue
        table[name] = sig
        table[f"SIG{name}"] = sig
        table[str(int(sig))] = sig
    return table


SIGNALS = _build_signal_table()


def resolve_signal(value: str | int) -> signal.Signals:
    """Resolve a signal given by name, "SIG"-prefixed name or number.

    Args:
        value: e.g. "HUP", "SIGTERM", "9" or 9

    Returns:
        The matching signal

    Raises:
        ConfigError: If the signal is unknown or unavailable on this platform
    """
    key = str(value).strip().upper()
    try:
        return SIGNALS[key]
    except KeyError:
        raise ConfigError(
            f"Unknown signal '{value}'. Valid signals: {', '.join(n for n in SIGNALS if not n.isdigit())}"
        ) from None


def parse_duration(text: str) -> float:
    """Parse a duration string such as "100ms", "1.5s" or "1m30s".

    Args:
        text: Duration string; "0" is accepted without a unit

    Returns:
        Duration in seconds (never negative)

    Raises:
        ConfigError: If the string is malformed or negative
    """
    text = str(text).strip()
    if text in ("0", "+0", "-0"):
        return 0.0

    match = _DURATION_RE.fullmatch(text)
    if not match:
        raise ConfigError(f"Invalid duration '{text}'")

    sign, body = match.group(1), match.group(2)
    seconds = sum(
        float(number) * _DURATION_UNITS[unit] for number, unit in re.findall(_DURATION_TOKEN, body)
    )
    if sign == "-" and seconds > 0:
        raise ConfigError(f"Duration must not be negative: '{text}'")
    return seconds


def compile_patterns(patterns: list[str]) -> GitIgnoreSpec:
    """Compile gitignore-style rules into a matcher.

    Raises:
        ConfigError: If a rule cannot be compiled
    """
    try:
        return GitIgnoreSpec.from_lines(patterns)
    except (ValueError, TypeError) as e:
        raise ConfigError(f"Invalid pattern list {patterns!r}: {e}") from e


def _fix_trigger(index: int, trigger: TriggerConfig) -> TriggerConfig:
    name = trigger.name or f"trigger-{index}"

    if not trigger.command or not str(trigger.command).strip():
        raise ConfigError(f"Trigger '{name}' has no command")

    if not isinstance(trigger.patterns, list) or not all(isinstance(p, str) for p in trigger.patterns):
        raise ConfigError(f"Trigger '{name}': patterns must be a list of strings")

    delay = trigger.delay or DEFAULT_DELAY
    sig = trigger.signal or DEFAULT_SIGNAL

    try:
        delay_seconds = parse_duration(delay)
        kill_signal = resolve_signal(sig)
    except ConfigError as e:
        raise ConfigError(f"Trigger '{name}': {e}") from e

    return dataclasses.replace(
        trigger,
        name=name,
        environ={str(k): str(v) for k, v in (trigger.environ or {}).items()},
        delay=str(delay),
        signal=str(sig),
        delay_seconds=delay_seconds,
        kill_signal=kill_signal,
        matcher=compile_patterns(trigger.patterns),
    )


def fix_config(config: WatchConfig) -> WatchConfig:
    """Fill in defaults and resolve delays, signals and patterns.

    The input is left untouched; a new, fully resolved WatchConfig is returned.

    Args:
        config: Configuration as parsed from a document

    Returns:
        Fixed configuration ready for the engine

    Raises:
        ConfigError: On any invalid value
    """
    watch_depth = DEFAULT_WATCH_DEPTH if config.watch_depth is None else config.watch_depth
    if not isinstance(watch_depth, int) or isinstance(watch_depth, bool) or watch_depth < 0:
        raise ConfigError(f"watch_depth must be a non-negative integer, got {watch_depth!r}")

    return dataclasses.replace(
        config,
        watch_paths=list(dict.fromkeys(config.watch_paths)) or list(DEFAULT_WATCH_PATHS),
        watch_depth=watch_depth,
        triggers=[_fix_trigger(i, t) for i, t in enumerate(config.triggers)],
    )


def parse_config(raw: dict[str, Any]) -> WatchConfig:
    """Build an (unfixed) WatchConfig from a parsed document.

    Args:
        raw: Mapping as produced by the JSON/YAML/TOML parser

    Raises:
        ConfigError: If the document shape is wrong
    """
    if not isinstance(raw, dict):
        raise ConfigError("Config document must be a mapping")

    watch_paths = raw.get("watch_paths") or []
    if isinstance(watch_paths, str):
        watch_paths = [watch_paths]

    triggers = []
    for i, t in enumerate(raw.get("triggers") or []):
        if not isinstance(t, dict):
            raise ConfigError(f"Trigger #{i} must be a mapping")
        # "pattens" is the key used by older config files
        patterns = t.get("patterns", t.get("pattens")) or []
        triggers.append(
            TriggerConfig(
                name=str(t.get("name") or ""),
                patterns=patterns,
                environ=t.get("env") or {},
                command=t.get("cmd") or "",
                delay=None if t.get("delay") in (None, "") else str(t["delay"]),
                signal=None if t.get("signal") in (None, "") else str(t["signal"]),
            )
        )

    return WatchConfig(
        description=str(raw.get("desc") or ""),
        watch_paths=[str(p) for p in watch_paths],
        watch_depth=raw.get("watch_depth"),
        triggers=triggers,
    )


def read_config_file(path: str | Path) -> dict[str, Any]:
    """Parse a config document according to its extension."""
    path = Path(path)
    suffix = path.suffix.lower()
    text = path.read_text(encoding="utf-8")

    try:
        if suffix == ".json":
            raw = json.loads(text)
        elif suffix in (".yml", ".yaml"):
            raw = yaml.safe_load(text)
        elif suffix == ".toml":
            raw = tomllib.loads(text)
        else:
            raise ConfigError(f"Unknown format config file: {path}")
    except (json.JSONDecodeError, yaml.YAMLError, tomllib.TOMLDecodeError) as e:
        raise ConfigError(f"Failed to parse config file {path}: {e}") from e

    return raw if raw is not None else {}


def find_config(directory: str | Path = ".") -> Path | None:
    """Return the first existing config document in directory, if any."""
    directory = Path(directory)
    for name in CONFIG_CANDIDATES:
        candidate = directory / name
        if candidate.is_file():
            return candidate
    return None


def load_config(path: str | Path | None = None, directory: str | Path = ".") -> WatchConfig:
    """Load, parse and fix a configuration.

    Args:
        path: Explicit config file; searched for in directory when omitted
        directory: Where to look for .fsw.* files

    Returns:
        Fixed WatchConfig

    Raises:
        FileNotFoundError: If no config document exists
        ConfigError: If the document is invalid
    """
    if path is None:
        path = find_config(directory)
        if path is None:
            raise FileNotFoundError(
                f"Config file not found in {Path(directory).resolve()}\n"
                f"Run 'fswatch init' to create one."
            )
    path = Path(path)
    if not path.exists():
        raise FileNotFoundError(f"Config file not found: {path}\nRun 'fswatch init' to create one.")

    config = fix_config(parse_config(read_config_file(path)))
    logger.debug(f"Loaded {len(config.triggers)} trigger(s) from {path}")
    return config


def config_to_dict(config: WatchConfig) -> dict[str, Any]:
    """Serialize a WatchConfig back into document form."""
    data: dict[str, Any] = {
        "desc": config.description,
        "triggers": [
            {
                "name": t.name,
                "patterns": list(t.patterns),
                "env": dict(t.environ),
                "cmd": t.command,
                "delay": t.delay or DEFAULT_DELAY,
                "signal": t.signal or DEFAULT_SIGNAL,
            }
            for t in config.triggers
        ],
        "watch_paths": list(config.watch_paths) or list(DEFAULT_WATCH_PATHS),
        "watch_depth": DEFAULT_WATCH_DEPTH if config.watch_depth is None else config.watch_depth,
    }
    return data


def save_config(config: WatchConfig, fmt: str = "yml", directory: str | Path = ".") -> Path:
    """Write a config document as .fsw.json or .fsw.yml.

    Args:
        config: Configuration to save
        fmt: "json" for JSON, anything else for YAML
        directory: Target directory

    Returns:
        Path of the written file
    """
    data = config_to_dict(config)
    directory = Path(directory)

    if fmt.strip().lower() == "json":
        path = directory / CONFIG_JSON
        path.write_text(json.dumps(data, indent=2, ensure_ascii=False) + "\n", encoding="utf-8")
    else:
        path = directory / CONFIG_YAML
        path.write_text(yaml.safe_dump(data, sort_keys=False, allow_unicode=True), encoding="utf-8")

    return path
