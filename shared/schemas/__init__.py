"""
Shared data schemas for GoCart

This package contains common data schemas used across all microservices.
"""

from .auth import Role, Principal

__all__ = [
    "Role",
    "Principal",
]

__version__ = "1.0.0"
