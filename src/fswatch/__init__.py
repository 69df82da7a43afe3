"""fswatch: Restart commands when watched files change."""

__version__ = "2.0.0"

# Public API
from fswatch.controller import FswatchController

__all__ = [
    "__version__",
    "FswatchController",
]
