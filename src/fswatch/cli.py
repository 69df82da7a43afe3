"""CLI entry point for fswatch: creates a config with a wizard or starts watching."""

import argparse
import asyncio
import logging
import os
import sys
from pathlib import Path

from fswatch import __version__
from fswatch.controller import FswatchController
from fswatch_core.config import ConfigError, find_config, load_config, save_config
from fswatch_core.models import TriggerConfig, WatchConfig
from fswatch_core.notifier import LoggingNotifier

LOG_FORMAT = "fswatch >>> %(message)s"

logging.getLogger("watchdog").setLevel(logging.INFO)

DEFAULT_COMMAND = "pytest -v"
DEFAULT_PATTERNS = ["**/*.go", "**/*.c", "**/*.py"]
DEFAULT_ENVIRON = {"DEBUG": "1"}


def configure_logging(verbose: bool = False) -> None:
    """Route status lines to stderr with the fswatch prefix."""
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format=LOG_FORMAT,
        stream=sys.stderr,
    )


def read_string(prompt: str, default: str) -> str:
    """Ask a question on the terminal, falling back to default on empty input."""
    answer = input(f"[?] {prompt} ({default}) ").strip()
    return answer or default


def generate_config() -> WatchConfig:
    """Interactively build a single-trigger configuration.

    Returns:
        Unfixed WatchConfig ready to be saved
    """
    name = read_string("name:", Path.cwd().name)

    command = ""
    while not command:
        command = read_string("command:", DEFAULT_COMMAND)

    return WatchConfig(
        description=f"Auto generated by fswatch [{name}]",
        triggers=[
            TriggerConfig(
                name=name,
                patterns=list(DEFAULT_PATTERNS),
                environ=dict(DEFAULT_ENVIRON),
                command=command,
            )
        ],
    )


def init_config(directory: str | Path = ".") -> Path:
    """Run the wizard and save the result as .fsw.yml or .fsw.json.

    Returns:
        Path of the written config
    """
    config = generate_config()
    fmt = read_string("Save format .fsw.(json|yml)", "yml")
    path = save_config(config, fmt, directory)
    print(f'Saved to "{path.name}"')
    return path


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    """
    Parse command-line arguments.

    Returns:
        Parsed arguments namespace
    """
    parser = argparse.ArgumentParser(
        prog="fswatch",
        description="Watch directories and restart commands when matching files change.",
        epilog="Examples:\n"
        "  fswatch                  # Start if .fsw.yml/.fsw.json exists, else run init\n"
        "  fswatch init             # Create a config interactively\n"
        "  fswatch -c my.fsw.yml    # Use custom config\n"
        "  fswatch --version        # Show version",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )

    parser.add_argument(
        "command",
        nargs="?",
        choices=["init", "start"],
        help="Subcommand (default: start if a config exists, otherwise init)",
    )

    parser.add_argument(
        "-c",
        "--config",
        default=None,
        help="Path to config file (default: search .fsw.json, .fsw.yml, .fsw.yaml, .fsw.toml)",
    )

    parser.add_argument(
        "-v",
        "--verbose",
        action="store_true",
        help="Show debug output (e.g. every watched directory)",
    )

    parser.add_argument(
        "--version",
        action="version",
        version=f"%(prog)s {__version__}",
    )

    return parser.parse_args(argv)


def start(config_path: str | None) -> None:
    """Load the configuration and watch until interrupted."""
    config = load_config(config_path)
    controller = FswatchController(config, notifier=LoggingNotifier())
    asyncio.run(controller.run())


def main(argv: list[str] | None = None) -> None:
    """
    Main entry point for fswatch CLI.

    Handles:
    - Argument parsing
    - Choosing between init and start
    - Error handling and exit codes
    """
    args = parse_args(argv)
    configure_logging(args.verbose)

    command = args.command
    if command is None:
        command = "start" if (args.config or find_config(os.getcwd())) else "init"

    try:
        if command == "init":
            init_config()
        else:
            start(args.config)

    except KeyboardInterrupt:
        sys.exit(130)
    except (ConfigError, FileNotFoundError) as e:
        print(f"Error: {e}", file=sys.stderr)
        sys.exit(1)
    except Exception as e:
        print(f"Error: unexpected failure: {e}", file=sys.stderr)
        sys.exit(1)


if __name__ == "__main__":
    main()
