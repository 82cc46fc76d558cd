# TokenVault Models
from tokenvault.models.base import BaseModel
from tokenvault.models.session_record import SessionRecord
from tokenvault.models.user import Role, User

__all__ = [
    "BaseModel",
    "Role",
    "SessionRecord",
    "User",
]
