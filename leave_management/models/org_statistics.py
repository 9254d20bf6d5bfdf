from sqlalchemy import Column, Integer, DateTime, JSON
from leave_management.database import Base

SNAPSHOT_ID = 1


class OrgStatisticsSnapshot(Base):
    """
    One logical row holding the last computed organisation statistics.
    Readers take whatever is stored; the refresher overwrites it in place.
    """
    __tablename__ = "org_statistics"

    id = Column(Integer, primary_key=True, default=SNAPSHOT_ID)
    year = Column(Integer, nullable=False)
    payload = Column(JSON, nullable=False)
    last_refreshed = Column(DateTime(timezone=True), nullable=False)
