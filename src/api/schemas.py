"""Pydantic schemas for the WorkChat HTTP API.

Chat responses keep the camelCase field names web clients already use
(``chatId``, ``toolsUsed``) via aliases; Python code uses snake_case.
"""

from pydantic import BaseModel, ConfigDict, Field


class CamelModel(BaseModel):
    """Base schema serialized with camelCase aliases."""

    model_config = ConfigDict(populate_by_name=True)


class ChatResponse(CamelModel):
    """Result of one chat turn."""

    response: str
    chat_id: str = Field(alias="chatId")
    model: str
    tools_used: list[str] = Field(default_factory=list, alias="toolsUsed")


class ChatSummary(BaseModel):
    id: str
    title: str
    created_at: str
    updated_at: str
    message_count: int = 0


class ChatListResponse(BaseModel):
    chats: list[ChatSummary]


class AttachmentInfo(BaseModel):
    id: str
    original_name: str
    mime_type: str
    file_size: int


class ChatMessageItem(BaseModel):
    id: str
    role: str
    content: str
    model: str | None = None
    tools_used: list[str] = Field(default_factory=list)
    attachments: list[AttachmentInfo] = Field(default_factory=list)
    sequence: int
    created_at: str


class ChatInfo(BaseModel):
    id: str
    title: str
    created_at: str
    updated_at: str


class ChatDetailResponse(BaseModel):
    chat: ChatInfo
    messages: list[ChatMessageItem]


class WorkerStatusResponse(BaseModel):
    """Public worker status. Does not reveal whose credentials are loaded."""

    ready: bool
    running: bool
    pid: int | None = None


class RestartResponse(BaseModel):
    ok: bool
    status: WorkerStatusResponse


class CredentialsRequest(BaseModel):
    """Google tokens handed over after the user completes OAuth login."""

    access_token: str = Field(..., min_length=1)
    refresh_token: str | None = None
    id_token: str | None = None
    expires_at: str | int | None = None


class CredentialsResponse(BaseModel):
    stored: bool
    worker: WorkerStatusResponse


class ToolInfo(BaseModel):
    name: str
    description: str


class ToolListResponse(BaseModel):
    tools: list[ToolInfo]


class FeedbackRequest(BaseModel):
    message: str
    rating: int


class FeedbackItem(BaseModel):
    id: str
    user_name: str
    user_image: str | None = None
    message: str
    rating: int
    created_at: str


class FeedbackCreatedResponse(BaseModel):
    message: str = "Feedback submitted successfully"
    feedback: FeedbackItem


class FeedbackListResponse(BaseModel):
    feedback: list[FeedbackItem]


class FeedbackStatsResponse(BaseModel):
    total_feedback: int
    average_rating: float
    rating_distribution: dict[str, int]
