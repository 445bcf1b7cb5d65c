"""Database models for users, conversations, messages, files and images."""
from omnichat.models.conversation import (
    Conversation, Message, File, ImageReference, MESSAGE_ROLES, Base
)
from omnichat.models.user import User
