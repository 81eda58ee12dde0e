from sqlalchemy.orm import declarative_base
from sqlalchemy import (
    Column,
    Index,
    String,
)

from .base import TicketRecord


Base = declarative_base()


# ----------------------------
# ORM models
# ----------------------------
class Ticket(Base):
    __tablename__ = "tickets"
    ticket_id = Column(String, primary_key=True)
    order_id = Column(String, nullable=False, index=True)

    # open vocabulary, owned by whoever writes it
    status = Column(String, nullable=False)
    # str.lower() of status; SQL lower() only folds ASCII on SQLite
    status_lc = Column(String, nullable=False, default="", index=True)

    issue = Column(String, nullable=False, default="")
    message = Column(String, nullable=False, default="")
    phone = Column(String, nullable=False, default="")
    email = Column(String, nullable=False, default="")
    name = Column(String, nullable=False, default="")
    order_name = Column(String, nullable=False, default="")

    # ISO-8601 UTC
    created_at = Column(String, nullable=False)
    updated_at = Column(String, nullable=False)

    __table_args__ = (
        Index("idx_tickets_updated_at", "updated_at"),
    )

    def to_record(self) -> TicketRecord:
        return TicketRecord(
            ticket_id=self.ticket_id,
            order_id=self.order_id,
            status=self.status,
            issue=self.issue or "",
            message=self.message or "",
            phone=self.phone or "",
            email=self.email or "",
            name=self.name or "",
            order_name=self.order_name or "",
            created_at=self.created_at,
            updated_at=self.updated_at,
        )
