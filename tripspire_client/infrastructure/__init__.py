"""Infrastructure Layer — HTTP transport, session, cache storage, logging.

Invariants:
    - All remote calls go through ResilientApiClient (retry/cancellation/error mapping)
"""
