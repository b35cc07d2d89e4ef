"""Resource IDs, RES values, protocol codec, configuration and logging for a RES API gateway."""

__version__ = "1.7.5"