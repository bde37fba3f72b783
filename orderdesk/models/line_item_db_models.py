"""SQLAlchemy ORM model for line items shared by orders and leads"""

from sqlalchemy import Column, String, Integer, Numeric, DateTime, Index
from datetime import datetime
import uuid

from .database import Base


class LineItem(Base):
    """Line item table keyed by (entity_kind, entity_id)"""
    __tablename__ = "line_items"
    
    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    
    entity_kind = Column(String(30), nullable=False)
    entity_id = Column(String(36), nullable=False)
    position = Column(Integer, nullable=False, default=0)
    
    product_id = Column(String(36), nullable=True)
    product_name = Column(String(200), nullable=False, default="")
    quantity = Column(Integer, nullable=False, default=1)
    unit_price = Column(Numeric(18, 4), nullable=False, default=0)
    line_total = Column(Numeric(18, 2), nullable=False, default=0)
    
    created_at = Column(DateTime, nullable=False, default=datetime.utcnow)
    
    __table_args__ = (
        Index('ix_line_items_entity', 'entity_kind', 'entity_id', 'position'),
    )
