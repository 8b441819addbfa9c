"""Price & availability synchronization engine for the configurator catalog."""

__version__ = "0.1.0"
