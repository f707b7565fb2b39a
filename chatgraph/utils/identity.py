"""
Identifier generation for graph entities.
"""

import uuid


class IdentityGenerator:
    """Produces globally unique, opaque identifiers (32 lowercase hex characters)."""

    def new_id(self) -> str:
        return uuid.uuid4().hex
