"""hostgate: dynamic Host-header routing reverse proxy."""

__version__ = "1.0.0"
