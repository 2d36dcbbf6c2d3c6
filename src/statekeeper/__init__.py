"""
Statekeeper - distributed quota and rate-limit coordination.

Stateless request handlers share token budgets, ETH spend budgets and
request-rate limits through a single remote durable state service.
"""

__version__ = "0.1.0"
