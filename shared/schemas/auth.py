"""
Authentication schemas for GoCart

Principal and role models shared by the gateway and the services behind it.
"""

from typing import Any, Dict, Optional
from enum import Enum
from pydantic import BaseModel, Field


class Role(str, Enum):
    """Marketplace role enumeration"""
    CUSTOMER = "customer"
    ARTIST = "artist"
    ADMIN = "admin"


class Principal(BaseModel):
    """Authenticated identity derived from a verified bearer token"""
    id: str = Field(..., min_length=1)
    email: Optional[str] = None
    role: Role

    model_config = {"frozen": True}

    @classmethod
    def from_claims(cls, claims: Dict[str, Any]) -> "Principal":
        """
        Build a principal from decoded JWT claims

        Args:
            claims: Decoded token payload ({userId, email, role, exp})

        Returns:
            Principal instance

        Raises:
            ValueError: If userId is missing or role is unknown
        """
        user_id = claims.get("userId")
        if user_id is None or str(user_id) == "":
            raise ValueError("Token is missing the userId claim")

        try:
            role = Role(claims.get("role"))
        except ValueError:
            raise ValueError(f"Unknown role claim: {claims.get('role')!r}")

        return cls(id=str(user_id), email=claims.get("email"), role=role)

