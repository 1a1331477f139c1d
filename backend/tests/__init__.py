"""
Storefront API test suite.

Markers:
- unit: pure functions and in-process services (cache, hub, limiter)
- api: full FastAPI app over httpx against in-memory SQLite
"""
