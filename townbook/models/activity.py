from sqlalchemy import Boolean, Column, DateTime, Integer, String, Text, func

from townbook.dependencies.database import Base


class Activity(Base):
    """Журнал дій (тільки додавання). Рядки з is_processed=False утворюють чергу аналітики."""

    __tablename__ = "activities"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, nullable=True, index=True)
    user_name = Column(String, nullable=False, default="system")
    action = Column(String, nullable=False, index=True)
    description = Column(Text, nullable=False)
    item_id = Column(Integer, nullable=True)
    item_type = Column(String, nullable=True, index=True)
    timestamp = Column(DateTime, server_default=func.now(), index=True)
    is_processed = Column(Boolean, default=True, nullable=False)
