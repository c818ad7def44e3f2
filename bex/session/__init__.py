"""会话存储模块。"""

from bex.session.manager import ConversationStore, Role, Turn

__all__ = ["ConversationStore", "Role", "Turn"]
