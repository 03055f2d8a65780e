"""
Integration record package.

Reads and writes each tenant's integration record on the platform API and
runs GraphQL queries on the tenant's behalf.
"""

from .client import IntegrationClient
from .merge import merge_patch
from .models import GraphQLResponse

__all__ = ["IntegrationClient", "GraphQLResponse", "merge_patch"]
