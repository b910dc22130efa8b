"""
All database models. Imported here so Base.metadata sees them for create_all().
"""

from .base import OwnedBase
from .avatar import Avatar, BaseKind, LipsyncQuality
from .message import Message, MessageRole, MessageStatus

__all__ = [
    "OwnedBase",
    "Avatar", "BaseKind", "LipsyncQuality",
    "Message", "MessageRole", "MessageStatus",
]
