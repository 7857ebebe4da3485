"""Split a continuous capture of back-to-back songs into one file per song."""

__version__ = "0.1.0"
