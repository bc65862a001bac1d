"""Database models"""

from voice_control.models.user import User

__all__ = ["User"]
