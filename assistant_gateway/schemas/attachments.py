"""Schemas for attachment descriptors and the resolve endpoint."""

from pydantic import BaseModel, Field


class AttachmentIn(BaseModel):
    """One attachment as sent by the caller: inline text or an external document id."""

    name: str = Field(..., min_length=1, description="Display name of the attachment.")
    type: str | None = Field(None, description="Declared mime type, if known.")
    text: str | None = Field(None, description="Inline text content. When set, no fetch happens.")
    external_ref: str | None = Field(
        None, alias="externalRef", description="External document id (Google Drive file id)."
    )

    model_config = {"populate_by_name": True}


class ResolveAttachmentsRequest(BaseModel):
    """Request body for POST /api/attachments/resolve."""

    attachments: list[AttachmentIn] = Field(..., description="Descriptors to resolve, in order.")


class ResolvedAttachment(BaseModel):
    name: str
    mime_type: str | None = Field(None, alias="mimeType")
    resolved_text: str | None = Field(None, alias="resolvedText")
    unresolved_reason: str | None = Field(None, alias="unresolvedReason")
    link: str | None = None

    model_config = {"populate_by_name": True}


class ResolveAttachmentsResponse(BaseModel):
    """Same length and order as the request; each entry is resolved or carries a reason."""

    attachments: list[ResolvedAttachment]

    model_config = {
        "json_schema_extra": {
            "examples": [
                {
                    "attachments": [
                        {"name": "notes.txt", "mimeType": "text/plain", "resolvedText": "hello world"},
                        {
                            "name": "video.mp4",
                            "mimeType": "video/mp4",
                            "unresolvedReason": "no content extraction available for mime type video/mp4",
                            "link": "https://drive.google.com/file/d/abc/view",
                        },
                    ]
                }
            ]
        }
    }
