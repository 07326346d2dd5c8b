"""Catalog repository - Database reads for products"""

from sqlalchemy import func
from sqlalchemy.orm import Session

from ...models import Product


class CatalogRepository:
    """Repository for catalog database operations (read-only)"""

    @staticmethod
    def list_products(db: Session, company_id: str) -> list[Product]:
        """Get every product for a tenant, archived included, in id order"""
        return db.query(Product).filter(Product.company_id == company_id).order_by(Product.id).all()

    @staticmethod
    def find_by_sku(db: Session, company_id: str, sku: str) -> list[Product]:
        """Get products whose SKU equals ``sku`` (case-insensitive)"""
        return (
            db.query(Product)
            .filter(
                Product.company_id == company_id,
                func.upper(func.trim(Product.sku)) == sku.strip().upper(),
            )
            .order_by(Product.id)
            .all()
        )

    @staticmethod
    def find_by_barcode(db: Session, company_id: str, barcode: str) -> list[Product]:
        """Get products whose barcode equals ``barcode``"""
        return (
            db.query(Product)
            .filter(Product.company_id == company_id, func.trim(Product.barcode) == barcode.strip())
            .order_by(Product.id)
            .all()
        )
