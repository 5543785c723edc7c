"""
Top‑level package for the Enigma API.

The package provides no public exports; all functionality lives in
submodules under ``app``.  The Python client lives in the separate
``enigma_client`` module so that it can be used without the server
dependencies.
"""

__all__ = []
