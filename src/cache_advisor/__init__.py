"""Smart cache advisor: observes SQL statements and recommends what to cache.

Public entry points are imported lazily by consumers (`cache_advisor.container`,
`cache_advisor.monitor`) so importing the package does not open connections.
"""

__all__ = ["config", "fingerprint", "monitor", "aggregator", "recommendations", "lifecycle", "drivers"]
