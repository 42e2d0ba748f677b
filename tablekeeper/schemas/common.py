from typing import Any, Dict
from pydantic import BaseModel


# Error responses: every BookingError renders as this body
class ErrorResponse(BaseModel):
    error: str
    message: str
    retryable: bool = False
    details: Dict[str, Any] = {}
