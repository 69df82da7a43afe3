"""fswatch-core: Watch-and-restart engine shared by fswatch frontends."""

__version__ = "2.0.0"

# Models
from fswatch_core.models import FSEvent, TriggerConfig, WatchConfig

# Config
from fswatch_core.config import ConfigError, fix_config, load_config, parse_duration, resolve_signal

# Engine
from fswatch_core.bus import EventBus
from fswatch_core.file_watcher import ChangeFilter, TreeWatcher, list_all_dirs
from fswatch_core.notifier import FswatchNotifier, LoggingNotifier, NoOpNotifier
from fswatch_core.supervisor import ProcessSupervisor
from fswatch_core.trigger import TriggerEngine, TriggerState

__all__ = [
    "__version__",
    # Models
    "FSEvent",
    "TriggerConfig",
    "WatchConfig",
    # Config
    "ConfigError",
    "fix_config",
    "load_config",
    "parse_duration",
    "resolve_signal",
    # Engine
    "EventBus",
    "ChangeFilter",
    "TreeWatcher",
    "list_all_dirs",
    "ProcessSupervisor",
    "TriggerEngine",
    "TriggerState",
    # Notifiers
    "FswatchNotifier",
    "LoggingNotifier",
    "NoOpNotifier",
]
