"""
models/__init__.py
------------------
Re-export all models so create_tables.py (and test fixtures) can import Base
and discover every table via a single import:

    from assistant_platform.models import Base
"""

from assistant_platform.db.base import Base
from assistant_platform.models.chatbot import Chatbot
from assistant_platform.models.conversation import Conversation
from assistant_platform.models.feedback import Feedback
from assistant_platform.models.message import Message, MessageRole
from assistant_platform.models.tenant import Tenant
from assistant_platform.models.usage import UsageMetric
from assistant_platform.models.user import User, UserRole

__all__ = [
    "Base",
    "Chatbot",
    "Conversation",
    "Feedback",
    "Message",
    "MessageRole",
    "Tenant",
    "UsageMetric",
    "User",
    "UserRole",
]
