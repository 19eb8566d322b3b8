"""sysgauge - live memory, swap, CPU and disk gauges in the terminal."""

__version__ = "0.1.0"
