from sqlalchemy import BigInteger, Column, DateTime, ForeignKey, Index, Integer, Text, func

from balance_tracker.infrastructure.db.base import Base


class BalanceSnapshot(Base):
    __tablename__ = "balance_snapshots"
    id = Column(BigInteger, primary_key=True, autoincrement=True)
    wallet_id = Column(Integer, ForeignKey("wallets.id"), nullable=False)
    network_id = Column(Integer, ForeignKey("networks.id"), nullable=False)
    # Smallest on-chain unit as a decimal string, never a float
    balance = Column(Text, nullable=False)
    block_number = Column(BigInteger, nullable=True)
    timestamp = Column(DateTime(timezone=True), nullable=False)
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())

    __table_args__ = (
        Index(
            "idx_balance_snapshots_pair_timestamp",
            "wallet_id",
            "network_id",
            timestamp.desc(),
        ),
        Index("idx_balance_snapshots_timestamp", "timestamp"),
    )
