"""
VeraNode package initializer

Anonymous weighted voting on campus rumors, with hash-chained finality.

Keep this module lightweight. Importing the package must not build the
engine singleton or touch the data directory; that happens in
veranode.vera_engine.
"""

__version__ = "0.4.0"

__all__ = ["__version__"]
