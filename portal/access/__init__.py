"""
Access resolution for the reporting portal.

Takes an explicit `Identity` and answers which hubs, report groups and
reports that identity can see. Has no dependency on FastAPI.
"""

from .identity import Identity
from .resolver import AccessibleCatalog, AccessLevel, PermissionResolver

__all__ = [
    "AccessLevel",
    "AccessibleCatalog",
    "Identity",
    "PermissionResolver",
]
