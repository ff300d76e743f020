"""SkySync: live tracker refresh and viewer track synchronization."""

__version__ = "0.1.0"
