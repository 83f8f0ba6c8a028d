"""SQLAlchemy table definitions for data flows and their runs.

Uses SQLAlchemy Core (not ORM) for explicit control over queries
and compatibility with multiple database backends.
"""

from sqlalchemy import (
    Column,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    MetaData,
    String,
    Table,
    Text,
)

# Shared metadata for all tables
metadata = MetaData()

# === Data Flows ===

data_flows_table = Table(
    "data_flows",
    metadata,
    Column("id", String(64), primary_key=True),
    Column("name", String(255), nullable=False, unique=True),
    # Descriptors and cursor are canonical JSON text
    Column("source_json", Text, nullable=False),
    Column("sink_json", Text, nullable=False),
    Column("runtime_json", Text),
    Column("status", String(32), nullable=False),
    Column("next_source_id", Text),
    Column("last_run_at", DateTime(timezone=True)),
    Column("last_error", Text),
    Column("created_at", DateTime(timezone=True), nullable=False),
    Column("updated_at", DateTime(timezone=True), nullable=False),
)

# === Data Flow Runs ===

data_flow_runs_table = Table(
    "data_flow_runs",
    metadata,
    Column("id", String(64), primary_key=True),
    Column(
        "data_flow_id",
        String(64),
        ForeignKey("data_flows.id", ondelete="CASCADE"),
        nullable=False,
    ),
    Column("status", String(32), nullable=False),
    Column("run_after", DateTime(timezone=True), nullable=False),
    Column("started_at", DateTime(timezone=True)),
    Column("ended_at", DateTime(timezone=True)),
    Column("error_message", Text),
    Column("first_id", Text),
    Column("last_id", Text),
    Column("records_processed", Integer, nullable=False, default=0),
    Column("created_at", DateTime(timezone=True), nullable=False),
    Index("ix_data_flow_runs_flow_status", "data_flow_id", "status"),
    Index("ix_data_flow_runs_status_run_after", "status", "run_after"),
)
