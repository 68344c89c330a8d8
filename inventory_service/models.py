from datetime import datetime, timezone

from sqlalchemy import Column, Integer, String, Numeric, DateTime, ForeignKey, CheckConstraint
from sqlalchemy.orm import relationship
from .database import Base


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


class Product(Base):
    __tablename__ = "products"

    id = Column(Integer, primary_key=True, autoincrement=True)
    name = Column(String(255), nullable=False, index=True)
    price = Column(Numeric(12, 2), nullable=False)
    quantity = Column(Integer, nullable=False)

    __table_args__ = (
        CheckConstraint('price >= 0', name='products_price_non_negative'),
        CheckConstraint('quantity >= 0', name='products_quantity_non_negative'),
    )

    def __repr__(self):
        return f"<Product(id={self.id}, name='{self.name}', price={self.price}, quantity={self.quantity})>"


class Bill(Base):
    __tablename__ = "bills"

    id = Column(Integer, primary_key=True, autoincrement=True)
    total = Column(Numeric(12, 2), nullable=False)
    date = Column(DateTime(timezone=True), nullable=False, default=utc_now)

    items = relationship(
        "BillItem",
        back_populates="bill",
        cascade="all, delete-orphan",
        order_by="BillItem.id",
    )

    def __repr__(self):
        return f"<Bill(id={self.id}, total={self.total}, date={self.date})>"


class BillItem(Base):
    __tablename__ = "bill_items"

    id = Column(Integer, primary_key=True, autoincrement=True)
    bill_id = Column(Integer, ForeignKey("bills.id", ondelete="CASCADE"), nullable=False, index=True)
    # Plain column: deleting a product must not rewrite bill history
    product_id = Column(Integer, nullable=False)
    name = Column(String(255), nullable=False)
    quantity = Column(Integer, nullable=False)
    price = Column(Numeric(12, 2), nullable=False)

    bill = relationship("Bill", back_populates="items")

    __table_args__ = (
        CheckConstraint('quantity > 0', name='bill_items_quantity_positive'),
    )

    def __repr__(self):
        return f"<BillItem(product_id={self.product_id}, quantity={self.quantity}, price={self.price})>"
