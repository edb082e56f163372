"""Session model: platform credentials issued for a shop."""

from datetime import datetime
from typing import TYPE_CHECKING

from sqlalchemy import Boolean, DateTime, ForeignKey, String, Text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from storegate.core.encryption import EncryptedToken
from storegate.models.base import Base

if TYPE_CHECKING:
    from storegate.models.shop import Shop

OFFLINE_SESSION_PREFIX = "offline_"


def offline_session_id(shop_domain: str) -> str:
    """Deterministic id of a shop's offline session."""
    return f"{OFFLINE_SESSION_PREFIX}{shop_domain}"


def online_session_id(shop_domain: str, user_id: int | str) -> str:
    """Id of a per-user online session."""
    return f"{shop_domain}_{user_id}"


class Session(Base):
    """An offline (per-shop) or online (per-user) access credential.

    A row whose ``access_token`` is empty is a placeholder and must not be
    used to build an API client.
    """

    __tablename__ = "sessions"

    id: Mapped[str] = mapped_column(String(255), primary_key=True)

    shop: Mapped[str] = mapped_column(
        String(255),
        ForeignKey("shops.domain", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )

    # Opaque nonce from the install handshake
    state: Mapped[str] = mapped_column(String(255), nullable=False, default="")
    is_online: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    # Comma-separated granted scopes
    scope: Mapped[str | None] = mapped_column(Text, nullable=True)
    expires: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    access_token: Mapped[str] = mapped_column(EncryptedToken(), nullable=False, default="")

    shop_ref: Mapped["Shop"] = relationship("Shop", back_populates="sessions")

    @property
    def is_usable(self) -> bool:
        return bool(self.access_token)

    @property
    def scopes(self) -> list[str]:
        return [s.strip() for s in (self.scope or "").split(",") if s.strip()]

    def __repr__(self) -> str:
        kind = "online" if self.is_online else "offline"
        return f"<Session {self.id} ({kind})>"
