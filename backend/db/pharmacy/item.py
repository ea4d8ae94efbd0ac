import uuid

from sqlalchemy import CheckConstraint, Column, Date, DateTime, ForeignKey, Integer, Numeric, String, Text, Uuid
from sqlalchemy.sql import func

from ..database import Base


class PharmacyItem(Base):
    __tablename__ = "pharmacy_items"
    __table_args__ = (
        CheckConstraint("quantity >= 0", name="ck_pharmacy_items_quantity_non_negative"),
        CheckConstraint("min_required >= 1", name="ck_pharmacy_items_min_required_positive"),
    )

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    item_code = Column(String, nullable=False, unique=True, index=True)  # MED1001 | SUP1001 | EQP1001 | LAB1001

    name = Column(String, nullable=False)
    # 'Medicine' | 'Supply' | 'Equipment' | 'Lab Supplies'
    category = Column(Text, nullable=False, index=True)

    quantity = Column(Integer, nullable=False, default=0)
    min_required = Column(Integer, nullable=False, default=1)
    unit_price = Column(Numeric(12, 2), nullable=False)
    expiry_date = Column(Date, nullable=True, index=True)
    manufacturer = Column(String, nullable=True)
    description = Column(Text, nullable=True)

    supplier_id = Column(Uuid(as_uuid=True), ForeignKey("suppliers.id", ondelete="SET NULL"), nullable=True, index=True)

    # Derived from quantity/min_required; written only together with them.
    status = Column(Text, nullable=False, default="in_stock", index=True)
    version = Column(Integer, nullable=False, default=1)

    created_at = Column(DateTime, nullable=False, server_default=func.now())
    updated_at = Column(DateTime, nullable=False, server_default=func.now())
