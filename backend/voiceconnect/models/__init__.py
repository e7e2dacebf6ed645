# Importing every model registers it on Base.metadata (Alembic, create_all)
from voiceconnect.models.user import User
from voiceconnect.models.connection import Connection
from voiceconnect.models.contact_reveal import ContactReveal
from voiceconnect.models.post import Post, PostLike
from voiceconnect.models.comment import Comment, CommentLike
from voiceconnect.models.notification import Notification

__all__ = [
    "User",
    "Connection",
    "ContactReveal",
    "Post",
    "PostLike",
    "Comment",
    "CommentLike",
    "Notification",
]
