"""SQLAlchemy ORM models for the shared users / data_items store"""

from sqlalchemy import JSON, Column, DateTime, Index, Text
from sqlalchemy.orm import declarative_base
from sqlalchemy.sql import func

Base = declarative_base()


class User(Base):
    """Account row; managers and admins are the tenants that own data"""

    __tablename__ = "users"

    id = Column(Text, primary_key=True)
    name = Column(Text, nullable=False)
    email = Column(Text, unique=True, nullable=False, index=True)
    role = Column(Text, nullable=False, default="manager")
    manager_id = Column(Text, nullable=True, index=True)
    phone = Column(Text, nullable=True)
    whatsapp_settings = Column(JSON, nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())
    updated_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now(), onupdate=func.now())


class DataItem(Base):
    """Opaque JSON blob of one entity (sale, customer, ...) owned by a tenant"""

    __tablename__ = "data_items"
    __table_args__ = (Index("idx_data_items_user_type", "user_id", "type"),)

    id = Column(Text, primary_key=True)
    user_id = Column(Text, nullable=False, index=True)
    type = Column(Text, nullable=False)
    data = Column(JSON, nullable=False)
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())
    updated_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now(), onupdate=func.now())
