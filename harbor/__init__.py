"""Harbor - per-session execution, workspace and version history substrate."""

__version__ = "0.1.0"
