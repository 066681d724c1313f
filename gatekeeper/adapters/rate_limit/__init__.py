"""Rate limiting adapters.

This package holds the in-memory admission-control engine: the sharded
window store, the fixed-window limiter and its background reclaimer. The
HTTP layer depends only on the interfaces in ``base`` so the counting table
can later move to a shared store without changing the routes.
"""
