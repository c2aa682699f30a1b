"""Core domain models."""

from .user import User

__all__ = ["User"]
