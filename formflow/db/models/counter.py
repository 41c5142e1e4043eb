from sqlalchemy import Column, Integer, String

from formflow.db.base import Base


class IdCounter(Base):
    """Last number handed out for one human-readable id sequence."""
    __tablename__ = "id_counters"

    name = Column(String(50), primary_key=True)
    value = Column(Integer, nullable=False, default=0)

    def __repr__(self) -> str:
        return f"<IdCounter {self.name}={self.value}>"
