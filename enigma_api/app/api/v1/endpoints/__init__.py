"""
Endpoint modules for API v1.

Each module defines an APIRouter for one area (auth, members, health);
``router.py`` mounts them under their prefixes.
"""
