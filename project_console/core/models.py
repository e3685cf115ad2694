from sqlalchemy import (
    Column,
    ForeignKey,
    Integer,
    String,
    TIMESTAMP,
    Text,
    JSON,
)
from sqlalchemy.sql import func
from sqlalchemy.orm import relationship

from project_console.core.database import Base


# =========================
# User
# =========================
class User(Base):
    __tablename__ = "users_table"

    id = Column(Integer, primary_key=True, autoincrement=True)

    email = Column(String, nullable=False, unique=True, index=True)
    password = Column(String, nullable=False)
    role = Column(String, nullable=False, server_default="viewer")

    created_at = Column(
        TIMESTAMP(timezone=True),
        nullable=False,
        server_default=func.now(),
    )

    # Relationships
    projects = relationship(
        "ProjectRecord",
        back_populates="creator",
        passive_deletes=True,
    )


# =========================
# ProjectRecord (console-created projects)
# =========================
class ProjectRecord(Base):
    """
    A project created through the console.

    The display-keyed form is kept so a failed remote create can be retried:
    form -> remote create -> remote_id + sync_status
    """

    __tablename__ = "project_records"

    id = Column(Integer, primary_key=True, autoincrement=True)

    name = Column(String, nullable=False)
    payload = Column(JSON, nullable=False)  # display-keyed form values

    remote_id = Column(String(18), nullable=True, index=True)
    sync_status = Column(String, nullable=False, server_default="pending", index=True)
    last_error = Column(Text, nullable=True)

    created_by = Column(
        Integer,
        ForeignKey("users_table.id", ondelete="SET NULL"),
        nullable=True,
        index=True,
    )

    created_at = Column(
        TIMESTAMP(timezone=True),
        nullable=False,
        server_default=func.now(),
    )

    updated_at = Column(
        TIMESTAMP(timezone=True),
        nullable=False,
        server_default=func.now(),
        onupdate=func.now(),
    )

    # Relationships
    creator = relationship("User", back_populates="projects")
