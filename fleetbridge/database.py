"""
Database schema and connection management.

Uses SQLite with SQLAlchemy for the inspection <-> work order links.
"""

from datetime import datetime
from pathlib import Path
from sqlalchemy import create_engine, Column, String, DateTime, BigInteger
from sqlalchemy.orm import declarative_base, sessionmaker

Base = declarative_base()


class InspectionLink(Base):
    """Work order identifiers recorded against an inspection."""

    __tablename__ = "inspection_work_orders"

    inspection_id = Column(String, primary_key=True)
    internal_work_order_number = Column(String, nullable=True)
    external_work_order_id = Column(BigInteger, nullable=True)  # Fleetio work order id
    created_at = Column(DateTime, nullable=False, default=datetime.now)
    updated_at = Column(DateTime, nullable=False, default=datetime.now, onupdate=datetime.now)

    def to_dict(self) -> dict:
        return {
            "inspection_id": self.inspection_id,
            "internal_work_order_number": self.internal_work_order_number,
            "external_work_order_id": self.external_work_order_id,
        }


def init_database(db_path: Path) -> None:
    """
    Initialize database and create tables.

    Args:
        db_path: Path to SQLite database file
    """
    db_path.parent.mkdir(parents=True, exist_ok=True)
    engine = create_engine(f"sqlite:///{db_path}")
    Base.metadata.create_all(engine)


def get_session(db_path: Path):
    """
    Get database session.

    Args:
        db_path: Path to SQLite database file

    Returns:
        SQLAlchemy session
    """
    engine = create_engine(f"sqlite:///{db_path}")
    Session = sessionmaker(bind=engine)
    return Session()
