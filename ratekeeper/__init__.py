"""Ratekeeper: exchange-rate poller with deduplicated storage and a query API."""

__version__ = "0.1.0"
