"""Department tree for the caller's organization."""

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from flowdesk.auth.deps import get_current_user
from flowdesk.database import get_db
from flowdesk.models.user import User
from flowdesk.schemas.department import DepartmentTreeNode
from flowdesk.services.departments import get_department_tree

router = APIRouter()


@router.get("/tree", response_model=list[DepartmentTreeNode])
async def department_tree(
    db: AsyncSession = Depends(get_db),
    user: User = Depends(get_current_user),
):
    return await get_department_tree(db, user.organization_id)
