"""
Shared API dependencies.
"""
import uuid

from fastapi import Request

from wgportal.core.exceptions import InvalidId
from wgportal.services.domain_service import AcceptedDomainCache


def get_domain_cache(request: Request) -> AcceptedDomainCache:
    """Accepted domain cache owned by the running application."""
    return request.app.state.domain_cache


def parse_id(value: str, what: str = "peer") -> str:
    """Validate a UUID path parameter, returning its canonical string form."""
    try:
        return str(uuid.UUID(value))
    except (ValueError, AttributeError, TypeError):
        raise InvalidId(f"Invalid {what} ID format")
