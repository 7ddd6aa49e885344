"""Expose the ORM models at package level.

Importing the package registers every table on ``Base.metadata``, which the
test suite relies on for ``create_all``.
"""

from .base import Base  # noqa: F401
from .chat_messages import ChatMessage  # noqa: F401
from .chat_sessions import ChatSession  # noqa: F401
from .project_steps import ProjectStep  # noqa: F401
