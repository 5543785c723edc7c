"""
Application package initializer.

This package contains the main entrypoint for the API and its
submodules.  The infrastructure core (configuration, database,
bootstrap gate, rate limiting, security) lives in ``core``; business
logic lives in ``services`` and HTTP routes in ``api/v1/endpoints``.
Versioning is handled by grouping routers under the ``api/<version>/``
hierarchy.
"""

from .main import app  # noqa: F401
