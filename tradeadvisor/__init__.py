"""tradeadvisor - funded, verified AI trading suggestions over a metered inference network."""

__version__ = "0.1.0"
