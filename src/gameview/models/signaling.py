"""
Signaling Schema
================

Session description exchanged on POST /offer.

Input Contract (browser RTCSessionDescription.toJSON()):
    {
        "type": "offer",
        "sdp": "v=0\\r\\no=- 4611 2 IN IP4 127.0.0.1\\r\\n..."
    }

Example:
    from gameview.models.signaling import SessionDescription

    offer = SessionDescription.model_validate_json(body)
"""

from typing import Literal

from pydantic import BaseModel, Field, field_validator


class SessionDescription(BaseModel):
    """
    SDP offer or answer.

    Attributes:
        type: Description type
        sdp: Session Description Protocol payload
    """

    type: Literal["offer", "answer"] = Field(
        ...,
        description="Description type",
    )

    sdp: str = Field(
        ...,
        min_length=1,
        description="Session Description Protocol payload",
    )

    @field_validator("sdp")
    @classmethod
    def _looks_like_sdp(cls, value: str) -> str:
        if not value.lstrip().startswith("v="):
            raise ValueError("sdp must start with a 'v=' line")
        return value

    model_config = {
        "json_schema_extra": {
            "example": {
                "type": "offer",
                "sdp": "v=0\r\no=- 0 0 IN IP4 127.0.0.1\r\ns=-\r\n...",
            }
        }
    }
