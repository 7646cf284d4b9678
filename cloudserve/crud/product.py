from typing import List, Optional

from sqlalchemy.orm import Session

from cloudserve.models import Product, ProductPlan, ProductVariant


def get_product(db: Session, product_id: str) -> Optional[Product]:
    if not product_id:
        return None
    return db.query(Product).filter(Product.id == product_id).first()


def get_plan(db: Session, plan_id: str) -> Optional[ProductPlan]:
    if not plan_id:
        return None
    return db.query(ProductPlan).filter(ProductPlan.id == plan_id).first()


def get_variant(db: Session, variant_id: str) -> Optional[ProductVariant]:
    if not variant_id:
        return None
    return db.query(ProductVariant).filter(ProductVariant.id == variant_id).first()


def get_active_products(db: Session) -> List[Product]:
    return db.query(Product).filter(Product.is_active.is_(True)).all()


def get_active_plans(db: Session) -> List[ProductPlan]:
    return db.query(ProductPlan).filter(ProductPlan.is_active.is_(True)).order_by(ProductPlan.ram).all()


def get_active_variants(db: Session) -> List[ProductVariant]:
    return db.query(ProductVariant).filter(ProductVariant.is_active.is_(True)).all()


def set_default_variant(db: Session, variant: ProductVariant) -> ProductVariant:
    """
    Mark a variant as its product's default, clearing any previous default
    """
    (
        db.query(ProductVariant)
        .filter(ProductVariant.product_id == variant.product_id, ProductVariant.id != variant.id)
        .update({ProductVariant.is_default: False}, synchronize_session="fetch")
    )
    variant.is_default = True
    db.flush()
    return variant


def find_plan_by_names(db: Session, product_name: str, plan_name: str) -> Optional[ProductPlan]:
    """
    Get the plan an order was sold from; orders keep names rather than ids
    """
    return (
        db.query(ProductPlan)
        .join(Product, ProductPlan.product_id == Product.id)
        .filter(Product.name == product_name, ProductPlan.name == plan_name)
        .first()
    )
