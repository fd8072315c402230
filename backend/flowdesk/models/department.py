"""Department tree with a materialized path.

`path` holds the full ancestor chain joined by "/", ending with the
department's own id:

    root         -> "<root_id>"
    child        -> "<root_id>/<child_id>"
    grandchild   -> "<root_id>/<child_id>/<grandchild_id>"

Ancestor / descendant questions become string-prefix matches.
"""

import uuid
from datetime import datetime

from sqlalchemy import DateTime, ForeignKey, Integer, String
from sqlalchemy.orm import Mapped, mapped_column, relationship

from flowdesk.database import Base


class Department(Base):
    __tablename__ = "departments"

    id: Mapped[str] = mapped_column(
        String(36), primary_key=True, default=lambda: str(uuid.uuid4())
    )
    organization_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("organizations.id"), nullable=False, index=True
    )
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    parent_id: Mapped[str | None] = mapped_column(
        String(36), ForeignKey("departments.id"), index=True
    )
    path: Mapped[str] = mapped_column(String(1024), nullable=False, index=True)
    level: Mapped[int] = mapped_column(Integer, default=0)
    sort_order: Mapped[int] = mapped_column(Integer, default=0)

    # Not a FK: users.department_id already points here, and a cycle of
    # FKs between users and departments complicates table creation.
    manager_id: Mapped[str | None] = mapped_column(String(36), index=True)

    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime, default=datetime.utcnow, onupdate=datetime.utcnow
    )

    organization = relationship("Organization", back_populates="departments")
