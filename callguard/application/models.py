"""
Pydantic models for the error wire contract.

These models are the boundary between classified errors and what is written
to a response body. They never carry stack traces or internal state.
"""

from typing import Any, Dict, Optional

from pydantic import BaseModel, ConfigDict, Field

from callguard.shared.exceptions import ErrorKind


class ErrorResponse(BaseModel):
    """Wire-safe error response."""
    model_config = ConfigDict(populate_by_name=True, frozen=True)

    error: ErrorKind
    message: str
    status_code: int = Field(alias="statusCode", ge=400, le=599)
    timestamp: str
    path: Optional[str] = None
    correlation_id: Optional[str] = Field(default=None, alias="correlationId")
    details: Optional[Dict[str, Any]] = None

    def to_wire(self) -> Dict[str, Any]:
        """Serialize with wire field names, omitting absent optional fields."""
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)
