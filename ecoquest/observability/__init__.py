"""
Observability for ecoquest

- Metrics collection with Prometheus (ledger mutations, hydration, persistence)
"""

__all__ = ["metrics"]
