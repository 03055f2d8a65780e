"""
Response models for the integration client.
"""

from typing import Any, Dict, List, Optional

from pydantic import BaseModel


class GraphQLResponse(BaseModel):
    """GraphQL result; a 2xx response may still carry ``errors``."""

    data: Optional[Dict[str, Any]] = None
    errors: Optional[List[Any]] = None

    @property
    def has_errors(self) -> bool:
        return bool(self.errors)
