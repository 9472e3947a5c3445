"""buildstamp - HTTP service reporting build timestamps as JSON."""

__all__ = [
    "__version__",
    "clock",
    "config",
    "monitor",
]

__version__ = "0.1.0"

from buildstamp import clock
from buildstamp import config
from buildstamp import monitor
