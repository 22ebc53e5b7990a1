"""Event-driven secret cache.

Mirrors the secrets of a vault in memory and keeps them fresh from
change notifications delivered by webhook.
"""

__version__ = "1.0.0"
