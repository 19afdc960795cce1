"""ccsubagents — install, update and remove the local-artifact bundle."""

__version__ = "0.1.0"
