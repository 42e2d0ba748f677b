import uuid
from sqlalchemy import Column, String, Boolean, Integer, ForeignKey, Uuid
from sqlalchemy.orm import relationship
from tablekeeper.db.session import Base

class RestaurantTable(Base):
    __tablename__ = "restaurant_tables"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    restaurant_id = Column(Uuid, ForeignKey("restaurants.id"), nullable=False, index=True)
    number = Column(String(20), nullable=False)
    min_capacity = Column(Integer, nullable=False, default=1)
    max_capacity = Column(Integer, nullable=False)
    is_combinable = Column(Boolean, default=True)
    priority = Column(Integer, nullable=False, default=0)  # lower = seat here first
    is_active = Column(Boolean, default=True)

    restaurant = relationship("Restaurant", back_populates="tables")
