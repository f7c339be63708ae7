"""
Process-wide client state shared by all channels of a session
"""

from typing import Dict, Optional, Set

from ..models.user import User


class ClientState:
    """Last known user records and which channels reference each user"""

    def __init__(self):
        self.users: Dict[str, User] = {}
        self.user_channel_references: Dict[str, Set[str]] = {}

    def update_user(self, user: Optional[User]):
        if user is None or not user.id:
            return
        self.users[user.id] = user

    def update_user_reference(self, user: Optional[User], cid: str):
        if user is None or not user.id:
            return
        self.update_user(user)
        self.user_channel_references.setdefault(user.id, set()).add(cid)

    def get_user(self, user_id: str) -> Optional[User]:
        return self.users.get(user_id)
