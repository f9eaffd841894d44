from pydantic import BaseModel
from typing import Optional, Any

class ErrorResponse(BaseModel):
    """
    Standard error response structure.
    """
    error: str
    code: str
    details: Optional[Any] = None


class WebhookAck(BaseModel):
    status: str = "success"
    events: int = 0


class MemberPublicResponse(BaseModel):
    """
    Public-facing identity returned by the member resolution endpoint
    (the URL encoded in each member's QR code).
    """
    member_id: int
    display_name: str
    card_number: Optional[str] = None
    photo_url: Optional[str] = None
    registered: bool
