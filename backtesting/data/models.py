"""
Candle Database Models
SQLAlchemy ORM models for the database-backed data source
"""

from sqlalchemy import (
    Column, Integer, String, Float, DateTime, Index, UniqueConstraint, CheckConstraint
)
from sqlalchemy.sql import func

from config.database import Base


class Candle(Base):
    """
    Candle table for OHLCV time series per exchange/asset/pair/interval
    """
    __tablename__ = 'candles'

    id = Column(Integer, primary_key=True, autoincrement=True)

    # Identity
    exchange = Column(String(50), nullable=False, comment="Exchange name, lower case")
    base = Column(String(20), nullable=False, comment="Base currency")
    quote = Column(String(20), nullable=False, comment="Quote currency")
    asset = Column(String(20), nullable=False, comment="Asset type (spot, futures, ...)")
    interval = Column(Integer, nullable=False, comment="Candle interval in seconds")

    # Time series data
    timestamp = Column(DateTime, nullable=False, comment="Candle open time")

    # OHLCV data
    open = Column(Float, nullable=False, comment="Opening price")
    high = Column(Float, nullable=False, comment="Highest price")
    low = Column(Float, nullable=False, comment="Lowest price")
    close = Column(Float, nullable=False, comment="Closing price")
    volume = Column(Float, nullable=False, default=0.0, comment="Trading volume")

    created_at = Column(DateTime, default=func.now(), nullable=False)

    __table_args__ = (
        UniqueConstraint('exchange', 'base', 'quote', 'asset', 'interval', 'timestamp',
                         name='uq_candle_identity_timestamp'),
        CheckConstraint('high >= low', name='ck_candle_high_gte_low'),
        CheckConstraint('volume >= 0', name='ck_candle_volume_non_negative'),
        Index('idx_candles_series', 'exchange', 'base', 'quote', 'asset', 'interval', 'timestamp'),
    )

    def __repr__(self):
        return (f"<Candle(exchange='{self.exchange}', pair='{self.base}/{self.quote}', "
                f"timestamp='{self.timestamp}', close={self.close})>")

    def to_ohlcv_dict(self) -> dict:
        """Convert to dictionary for analysis libraries"""
        return {
            'timestamp': self.timestamp,
            'open': self.open,
            'high': self.high,
            'low': self.low,
            'close': self.close,
            'volume': self.volume,
        }
