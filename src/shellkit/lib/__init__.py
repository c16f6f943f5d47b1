"""shellkit library modules.

Configuration loading for the runtime.
"""

__all__ = [
    "config_parser",
]
