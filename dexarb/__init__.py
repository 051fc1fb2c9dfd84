"""DEX arbitrage opportunity detection and flashloan execution coordinator."""

__version__ = "0.1.0"
