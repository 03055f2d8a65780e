"""
Integration auth gateway.

Verifies tenant-scoped tokens and webhook signatures issued by the platform,
mints access keys for the integration, and reads/writes each tenant's
integration record through short-lived caches.
"""
