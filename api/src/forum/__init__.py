"""Community forum module.

Provides threaded discussions with:
- Posts, comments and arbitrarily nested replies
- Mutually exclusive like/dislike reactions
- Reports, pin and lock moderation
- Inline property mentions

Note: Router and store are not exported here to avoid circular imports.
Import directly from src.forum.router / src.forum.store when needed.
"""

from .exceptions import ForumError
from .models import FORUM_TABLES_CQL, Category, Comment, Post, Reply


__all__ = [
    "FORUM_TABLES_CQL",
    "Category",
    "Comment",
    "ForumError",
    "Post",
    "Reply",
]
