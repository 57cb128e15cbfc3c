"""RisqLab: market-cap weighted crypto index and portfolio risk engines."""

__version__ = "0.1.0"
