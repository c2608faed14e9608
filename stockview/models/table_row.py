from sqlalchemy import Column, Integer, String, DateTime, JSON, Index, func
from stockview.database import Base


class TableRow(Base):
    """One record of a logical table, stored as a JSON payload.

    Logical tables (accounts, stocks, views, ...) share this physical table and
    are read back in ``position`` order.
    """
    __tablename__ = "table_rows"
    __table_args__ = (
        Index("ix_table_rows_table_position", "table_name", "position"),
    )

    id = Column(Integer, primary_key=True, autoincrement=True)
    table_name = Column(String(64), nullable=False)
    position = Column(Integer, nullable=False)
    payload = Column(JSON, nullable=False)
    written_at = Column(DateTime(timezone=True), server_default=func.now())

    def __repr__(self):
        return f"<TableRow(table={self.table_name}, position={self.position})>"
