"""
Infrastructure shared by the routes and services: settings, logging,
the SQLite handle, the bootstrap gate, rate limiting, middleware and
token/password security.
"""
