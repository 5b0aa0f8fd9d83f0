"""
Rate limiting package for the proxy.

Tracks the upstream quota reported in response headers and retries a
rate-limited request once after the server-provided wait.
"""
