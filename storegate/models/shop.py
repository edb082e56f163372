"""Shop model: one row per installed tenant."""

from typing import TYPE_CHECKING

from sqlalchemy import String
from sqlalchemy.orm import Mapped, mapped_column, relationship

from storegate.models.base import Base

if TYPE_CHECKING:
    from storegate.models.session import Session


class Shop(Base):
    """An installed shop, keyed by its platform-assigned domain.

    ``domain`` never changes once created. The profile columns are
    refreshed from the Admin API on every successful token exchange.
    """

    __tablename__ = "shops"

    domain: Mapped[str] = mapped_column(String(255), primary_key=True)

    name: Mapped[str] = mapped_column(String(255), nullable=False, default="")
    email: Mapped[str | None] = mapped_column(String(255), nullable=True)
    timezone: Mapped[str | None] = mapped_column(String(64), nullable=True)
    currency: Mapped[str | None] = mapped_column(String(8), nullable=True)
    plan: Mapped[str | None] = mapped_column(String(100), nullable=True)

    sessions: Mapped[list["Session"]] = relationship(
        "Session",
        back_populates="shop_ref",
        passive_deletes=True,
    )

    def __repr__(self) -> str:
        return f"<Shop {self.domain} ({self.plan})>"
