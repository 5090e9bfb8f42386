"""TenantDB request input.

Extraction and validation of untrusted request data for a multi-tenant
database hosting service:
- owner/database resolution from URL paths
- per-field form extractors with explicit defaulting rules
- composite extractors for each page handler shape
- referer sanitization for post-login redirects

Nothing here touches storage or sessions; handlers receive plain values.
"""

__version__ = "0.1.0"
