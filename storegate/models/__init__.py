"""SQLAlchemy models."""

from storegate.models.base import Base
from storegate.models.session import Session, offline_session_id, online_session_id
from storegate.models.shop import Shop

__all__ = [
    # Base
    "Base",
    # Tenants
    "Shop",
    # Credentials
    "Session",
    "offline_session_id",
    "online_session_id",
]
