"""Dragon Radar game core."""

__version__ = "0.1.0"
