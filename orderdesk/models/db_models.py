"""SQLAlchemy ORM models for orders, leads and their append-only logs"""

from sqlalchemy import Column, String, Integer, Boolean, DateTime, Numeric, Text, Index
from datetime import datetime
import uuid

from .database import Base


def _uuid() -> str:
    return str(uuid.uuid4())


class Product(Base):
    """Catalog products"""
    __tablename__ = "products"
    
    id = Column(String(36), primary_key=True, default=_uuid)
    name = Column(String(200), nullable=False)
    price = Column(Numeric(10, 2), nullable=False, default=0)
    is_active = Column(Boolean, nullable=False, default=True)
    created_at = Column(DateTime, nullable=False, default=datetime.utcnow)


class Order(Base):
    """Orders table"""
    __tablename__ = "orders"
    
    id = Column(String(36), primary_key=True, default=_uuid)
    display_number = Column(Integer, nullable=False, unique=True)
    display_id = Column(String(20), nullable=False, unique=True)
    
    # Customer
    customer_name = Column(String(200), nullable=False, default="")
    customer_phone = Column(String(30), nullable=False, default="")
    customer_city = Column(String(200), nullable=False, default="")
    customer_address = Column(String(500), nullable=False, default="")
    postal_code = Column(String(20), nullable=False, default="")
    
    status = Column(String(50), nullable=False, default="pending")
    total_amount = Column(Numeric(12, 2), nullable=False, default=0)
    amount_paid = Column(Numeric(12, 2), nullable=False, default=0)
    notes = Column(Text, nullable=True)
    source_lead_id = Column(String(36), nullable=True, unique=True)
    
    # Legacy single-product fields (pre line-item rows)
    product_id = Column(String(36), nullable=True)
    product_name = Column(String(200), nullable=True)
    quantity = Column(Integer, nullable=True)
    price = Column(Numeric(10, 2), nullable=True)
    
    created_at = Column(DateTime, nullable=False, default=datetime.utcnow)
    updated_at = Column(DateTime, nullable=False, default=datetime.utcnow, onupdate=datetime.utcnow)
    
    __table_args__ = (
        Index('ix_orders_status', 'status'),
        Index('ix_orders_customer_phone', 'customer_phone'),
    )


class Lead(Base):
    """Prediction leads table"""
    __tablename__ = "leads"
    
    id = Column(String(36), primary_key=True, default=_uuid)
    list_name = Column(String(200), nullable=True)
    name = Column(String(200), nullable=False, default="")
    telephone = Column(String(30), nullable=False, default="")
    address = Column(String(500), nullable=False, default="")
    city = Column(String(200), nullable=False, default="")
    status = Column(String(50), nullable=False, default="not_contacted")
    total_amount = Column(Numeric(12, 2), nullable=False, default=0)
    notes = Column(Text, nullable=True)
    
    # Legacy single-product fields
    product = Column(String(200), nullable=True)
    quantity = Column(Integer, nullable=True)
    price = Column(Numeric(10, 2), nullable=True)
    
    created_at = Column(DateTime, nullable=False, default=datetime.utcnow)
    updated_at = Column(DateTime, nullable=False, default=datetime.utcnow, onupdate=datetime.utcnow)
    
    __table_args__ = (
        Index('ix_leads_telephone', 'telephone'),
    )


class StatusHistory(Base):
    """Append-only status transitions"""
    __tablename__ = "status_history"
    
    id = Column(Integer, primary_key=True, autoincrement=True)
    entity_kind = Column(String(30), nullable=False)
    entity_id = Column(String(36), nullable=False)
    from_status = Column(String(50), nullable=True)
    to_status = Column(String(50), nullable=False)
    actor = Column(String(200), nullable=True)
    created_at = Column(DateTime, nullable=False, default=datetime.utcnow)
    
    __table_args__ = (
        Index('ix_status_history_entity', 'entity_kind', 'entity_id'),
    )


class CallLog(Base):
    """Append-only call outcome log"""
    __tablename__ = "call_logs"
    
    id = Column(Integer, primary_key=True, autoincrement=True)
    entity_kind = Column(String(30), nullable=False)
    entity_id = Column(String(36), nullable=False)
    outcome = Column(String(50), nullable=False)
    notes = Column(Text, nullable=False, default="")
    agent = Column(String(200), nullable=True)
    created_at = Column(DateTime, nullable=False, default=datetime.utcnow)
    
    __table_args__ = (
        Index('ix_call_logs_entity', 'entity_kind', 'entity_id', 'created_at'),
    )
