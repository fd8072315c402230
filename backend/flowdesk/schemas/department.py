from __future__ import annotations

from pydantic import BaseModel


class DepartmentTreeNode(BaseModel):
    id: str
    name: str
    level: int
    path: str
    manager_id: str | None = None
    manager_name: str | None = None
    children: list[DepartmentTreeNode] = []
