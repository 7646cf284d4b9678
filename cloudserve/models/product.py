import uuid
from datetime import datetime, timezone

from sqlalchemy import Column, Integer, String, Boolean, ForeignKey, DateTime, Numeric, Text
from sqlalchemy.orm import relationship

from cloudserve.database import Base


class Product(Base):
    __tablename__ = "products"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    name = Column(String, nullable=False)
    slug = Column(String, unique=True, nullable=False)
    category = Column(String, nullable=False, default="game")
    description = Column(Text, nullable=True)
    is_active = Column(Boolean, nullable=False, default=True)
    stripe_product_id = Column(String, nullable=True)

    # Provisioning defaults, a variant may override any of them
    egg_id = Column(Integer, nullable=True)
    nest_id = Column(Integer, nullable=True)
    docker_image = Column(String, nullable=True)
    startup_command = Column(Text, nullable=True)

    created_at = Column(DateTime(timezone=True), nullable=False, default=lambda: datetime.now(timezone.utc))

    plans = relationship("ProductPlan", back_populates="product")
    variants = relationship("ProductVariant", back_populates="product")

    def __repr__(self):
        return f"<Product(id={self.id}, name={self.name})>"


class ProductPlan(Base):
    __tablename__ = "product_plans"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    product_id = Column(String(36), ForeignKey("products.id"), nullable=False, index=True)
    name = Column(String, nullable=False)
    price = Column(Numeric(10, 2), nullable=False)

    # Quotas: ram and disk in MB, cpu in percent of one core
    ram = Column(Integer, nullable=False)
    cpu = Column(Integer, nullable=False)
    disk = Column(Integer, nullable=False)
    databases = Column(Integer, nullable=False, default=1)
    backups = Column(Integer, nullable=False, default=3)

    is_active = Column(Boolean, nullable=False, default=True)
    stripe_price_id = Column(String, nullable=True)  # set once the catalog has been synced to Stripe

    created_at = Column(DateTime(timezone=True), nullable=False, default=lambda: datetime.now(timezone.utc))

    product = relationship("Product", back_populates="plans")

    def __repr__(self):
        return f"<ProductPlan(id={self.id}, name={self.name}, price={self.price})>"


class ProductVariant(Base):
    __tablename__ = "product_variants"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    product_id = Column(String(36), ForeignKey("products.id"), nullable=False, index=True)
    name = Column(String, nullable=False)
    is_default = Column(Boolean, nullable=False, default=False)
    is_active = Column(Boolean, nullable=False, default=True)

    egg_id = Column(Integer, nullable=True)
    nest_id = Column(Integer, nullable=True)
    docker_image = Column(String, nullable=True)
    startup_command = Column(Text, nullable=True)

    created_at = Column(DateTime(timezone=True), nullable=False, default=lambda: datetime.now(timezone.utc))

    product = relationship("Product", back_populates="variants")

    def __repr__(self):
        return f"<ProductVariant(id={self.id}, name={self.name}, default={self.is_default})>"
