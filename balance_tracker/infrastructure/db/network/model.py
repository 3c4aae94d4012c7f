from sqlalchemy import Boolean, Column, DateTime, Integer, String, func

from balance_tracker.infrastructure.db.base import Base


class Network(Base):
    __tablename__ = "networks"
    id = Column(Integer, primary_key=True, autoincrement=True)
    name = Column(String(32), nullable=False, unique=True)
    chain_id = Column(Integer, nullable=False)
    token_address = Column(String(64), nullable=True)
    is_native = Column(Boolean, nullable=False)
    symbol = Column(String(32), nullable=False)
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())
    updated_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())
