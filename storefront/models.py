"""Database models for the product catalog."""
from datetime import datetime
from sqlalchemy import Column, Integer, String, Float, DateTime, Text
from sqlalchemy.orm import declarative_base

Base = declarative_base()

PRODUCT_CATEGORIES = ("material", "machine", "worker")


class Product(Base):
    """Catalog product model."""
    __tablename__ = "products"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String, index=True)
    price = Column(Float)
    image = Column(String, default="/placeholder.svg")
    description = Column(Text, default="")
    category = Column(String, index=True)
    rating = Column(Float, default=0.0)
    created_at = Column(DateTime, default=datetime.utcnow)
