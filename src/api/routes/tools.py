"""FastAPI route listing the tools a chat can enable."""

from fastapi import APIRouter, Depends

from src.api.middleware.auth import get_current_user
from src.api.schemas import ToolListResponse
from src.db.models import User
from src.orchestrator.tool_catalog import describe_tools

router = APIRouter(tags=["tools"])


@router.get("/tools", response_model=ToolListResponse)
def list_tools(user: User = Depends(get_current_user)) -> ToolListResponse:
    return ToolListResponse(tools=describe_tools())
