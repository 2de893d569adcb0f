"""
Record Gateway - Quota-bounded batching data-access layer

Mediates between application code and an external record store: builds
structured queries, enforces per-transaction ceilings on read queries and
write batches, and maps persisted records to domain entities.
"""

__version__ = "0.1.0"
__author__ = "Systems Engineering Portfolio"
