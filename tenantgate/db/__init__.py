"""Database clients and connections.

Imports are intentionally NOT eagerly loaded here: both modules create
their engine/pool at import time. Use explicit imports:
``from tenantgate.db.redis import RedisClient``, etc.
"""
