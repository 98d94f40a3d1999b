"""
Core package — cross-cutting concerns.

Modules:
    config          — environment variables & settings
    logging_config  — structured JSON logging
    errors          — exception hierarchy & handlers
    middleware      — request timing / request-id middleware
    health          — health check aggregation
    kv_store        — persisted key-value store (memory or Redis)
    periodic        — cancellable fixed-interval async tasks
"""
