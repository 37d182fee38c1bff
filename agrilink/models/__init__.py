from .base import Base
from .user import User
from .conversation import Conversation
from .message import Message
from .disease import Disease
from .diagnosis import Diagnosis
from .error_code import ErrorCode

__all__ = [
    "Base",
    "User",
    "Conversation",
    "Message",
    "Disease",
    "Diagnosis",
    "ErrorCode",
]
