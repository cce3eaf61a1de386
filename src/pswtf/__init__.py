"""pswtf - process tree inspection and cascading termination."""

__version__ = "0.1.0"
