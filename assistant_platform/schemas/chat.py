"""
schemas/chat.py
---------------
Request model for the chat completion endpoint.

Two body shapes are accepted:
  - {"message": "Hi"}                            single prompt string
  - {"messages": [{"role": "user", ...}, ...]}   full client-side history;
    only the latest user turn is used, the server replays its own history.

A turn carries its text either as `content` or as `parts`
([{"type": "text", "text": "..."}]), depending on the client SDK version.
"""

from typing import Optional

from pydantic import BaseModel, EmailStr, Field


class MessagePart(BaseModel):
    type: str
    text: Optional[str] = None


class ChatTurn(BaseModel):
    role: str
    content: Optional[str] = None
    parts: Optional[list[MessagePart]] = None
    id: Optional[str] = None

    def text(self) -> str:
        if self.parts:
            texts = [p.text for p in self.parts if p.type == "text" and p.text]
            if texts:
                return "".join(texts)
        return self.content or ""


class ChatRequest(BaseModel):
    message: Optional[str] = Field(
        default=None,
        max_length=32000,
        examples=["What are the main benefits of async programming?"],
    )
    messages: Optional[list[ChatTurn]] = None

    conversation_id: Optional[str] = None
    chatbot_id: Optional[str] = None

    # Per-request overrides, highest precedence
    model: Optional[str] = Field(default=None, max_length=100)
    temperature: Optional[float] = Field(default=None, ge=0, le=2)
    max_tokens: Optional[int] = Field(default=None, ge=1)

    # Identity hints: user_id, or company_slug + user_email, or neither (demo)
    user_id: Optional[str] = None
    company_slug: Optional[str] = Field(default=None, max_length=100)
    user_email: Optional[EmailStr] = None
    user_name: Optional[str] = Field(default=None, max_length=255)

    def prompt_text(self) -> str:
        """The new user turn, stripped. Empty string when none was sent."""
        if isinstance(self.message, str) and self.message.strip():
            return self.message.strip()
        for turn in reversed(self.messages or []):
            if turn.role == "user":
                return turn.text().strip()
        return ""
