"""
SpaceTraders proxy service package.

The proxy fronts the SpaceTraders game API, adding:
- Response caching: TTL chosen by URL pattern, personal data never cached
- Rate-limit handling: quota tracking from headers and a single 429 retry
- A bearer-token guard on personal (/my/...) routes

Structure:
- app.main: FastAPI app, routes, and error mapping.
- app.adapters: HTTP client for the upstream game API.
- app.caching: Key-value stores and the response cache.
- app.ratelimit: Rate-limit interceptor wrapped around every upstream call.
- app.domain: Cross-cutting request helpers (e.g., bearer guard).
"""
