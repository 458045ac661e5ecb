from sqlalchemy import Boolean, Column, DateTime, Integer, Text, text

from ..database import Base, _new_id, _utcnow


class User(Base):
    """SQLAlchemy model for ledger account holders."""

    __tablename__ = "users"

    id = Column(Text, primary_key=True, default=_new_id)
    username = Column(Text, nullable=False)
    # Holds the salted credential hash; the column name is kept from the
    # original schema.
    password = Column(Text, nullable=False)
    is_admin = Column(Boolean, default=False, server_default=text("FALSE"))
    points_balance = Column(Integer, default=0, server_default=text("0"))
    created_at = Column(DateTime, default=_utcnow, server_default=text("CURRENT_TIMESTAMP"))
