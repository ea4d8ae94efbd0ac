import uuid
from sqlalchemy import Column, String, Text, Uuid
from .database import Base


class Supplier(Base):
    __tablename__ = "suppliers"

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    supplier_code = Column(String, nullable=False, unique=True, index=True)  # S0001, S0002, ...
    name = Column(String, nullable=False, unique=True, index=True)
    contact_info = Column(String, nullable=True)
    notes = Column(Text, nullable=True)

    @property
    def to_schema(self):
        return {
            "id": self.id,
            "supplier_code": self.supplier_code,
            "name": self.name,
            "contact_info": self.contact_info,
            "notes": self.notes,
        }
