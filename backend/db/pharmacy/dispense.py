import uuid

from sqlalchemy import CheckConstraint, Column, DateTime, Integer, Numeric, String, Text, Uuid, event

from core.exceptions import ImmutableRecordError

from ..database import Base


class PharmacyDispense(Base):
    __tablename__ = "pharmacy_dispenses"
    __table_args__ = (
        CheckConstraint("quantity > 0", name="ck_pharmacy_dispenses_quantity_positive"),
    )

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)

    # Weak reference: deleting the item must leave the audit trail intact.
    item_id = Column(Uuid(as_uuid=True), nullable=False, index=True)

    # Item snapshot at dispense time
    item_code = Column(String, nullable=True)
    item_name = Column(String, nullable=False)
    category = Column(Text, nullable=False, index=True)
    unit_price_at_dispense = Column(Numeric(12, 2), nullable=False)

    quantity = Column(Integer, nullable=False)
    reason = Column(Text, nullable=True)

    # Naive UTC, assigned by the server clock
    dispensed_at = Column(DateTime, nullable=False, index=True)


@event.listens_for(PharmacyDispense, "before_update")
def _reject_dispense_update(mapper, connection, target):
    raise ImmutableRecordError(f"Dispense record {target.id} is append-only and cannot be updated")


@event.listens_for(PharmacyDispense, "before_delete")
def _reject_dispense_delete(mapper, connection, target):
    raise ImmutableRecordError(f"Dispense record {target.id} is append-only and cannot be deleted")
