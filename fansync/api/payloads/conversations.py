from datetime import datetime

from pydantic import BaseModel, Field, model_validator


class SendMessageRequest(BaseModel):
    text: str | None = Field(default=None, max_length=5000)
    media_uuids: list[str] = Field(default_factory=list)
    price_cents: int | None = Field(default=None, ge=0)
    template_uuid: str | None = None

    @model_validator(mode="after")
    def check_content(self) -> "SendMessageRequest":
        if not self.text and not self.media_uuids and not self.template_uuid:
            raise ValueError("A message needs text, media or a template")
        return self


class SendMessageResponse(BaseModel):
    conversation_id: str
    message_id: str
    sent_at: datetime


class OutboxItemResponse(BaseModel):
    id: str
    temp_id: str
    server_id: str | None = None
    state: str
    error: str | None = None
    text: str | None = None


class OutboxResponse(BaseModel):
    conversation_id: str
    data: list[OutboxItemResponse]
