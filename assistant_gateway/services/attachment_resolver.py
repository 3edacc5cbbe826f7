"""
Attachment resolution: turn attachment descriptors into plain-text context blocks.

Responsibility: inline text is used verbatim; external document references are
fetched from Drive (metadata, then content or export) and routed through the
extractor registry. Every failure is per-descriptor and ends up as an
"unresolved" annotation; nothing here raises to the caller.
"""

import asyncio
import logging
from dataclasses import dataclass
from enum import Enum
from urllib.parse import quote

import httpx

from assistant_gateway.core.config import ATTACHMENT_MAX_CHARS, DRIVE_API_BASE, HTTP_TIMEOUT
from assistant_gateway.core.credentials import CredentialCache
from assistant_gateway.ingest.loader import (
    GOOGLE_EXPORTS,
    ExtractorKind,
    ExtractorUnavailableError,
    bytes_to_text,
    classify,
)
from assistant_gateway.services.text_processing import clean_text, truncate_text

logger = logging.getLogger(__name__)


class AttachmentSource(str, Enum):
    INLINE_TEXT = "inline-text"
    EXTERNAL_DOCUMENT = "external-document-reference"


@dataclass
class AttachmentDescriptor:
    name: str
    declared_mime_type: str | None = None
    text: str | None = None
    external_ref: str | None = None
    resolved_text: str | None = None
    unresolved_reason: str | None = None
    link: str | None = None
    size: int | None = None

    @property
    def source(self) -> AttachmentSource:
        if self.text is not None:
            return AttachmentSource.INLINE_TEXT
        return AttachmentSource.EXTERNAL_DOCUMENT

    @property
    def resolved(self) -> bool:
        return self.resolved_text is not None

    def mark_unresolved(self, reason: str) -> None:
        self.resolved_text = None
        self.unresolved_reason = reason


class AttachmentResolver:
    """
    Resolves descriptors concurrently against Drive.

    The credential cache is shared by reference across all descriptors of one
    request so a refresh happens at most once.
    """

    def __init__(
        self,
        credentials: CredentialCache | None = None,
        client: httpx.AsyncClient | None = None,
        api_base: str = DRIVE_API_BASE,
        max_chars: int = ATTACHMENT_MAX_CHARS,
    ) -> None:
        self.credentials = credentials or CredentialCache()
        self._client = client
        self.api_base = api_base.rstrip("/")
        self.max_chars = max_chars
        self._token_lock = asyncio.Lock()
        self._refresh_attempted = False

    async def resolve(self, descriptors: list[AttachmentDescriptor]) -> list[AttachmentDescriptor]:
        """Resolve every descriptor in place. Returns the same list, same order."""
        if not descriptors:
            return descriptors
        logger.info("[attachments:resolve] IN  count=%d", len(descriptors))
        needs_network = any(d.source is AttachmentSource.EXTERNAL_DOCUMENT for d in descriptors)
        if not needs_network:
            for d in descriptors:
                self._resolve_inline(d)
        elif self._client is not None:
            await asyncio.gather(*(self._resolve_one(d, self._client) for d in descriptors))
        else:
            async with httpx.AsyncClient(timeout=HTTP_TIMEOUT) as client:
                await asyncio.gather(*(self._resolve_one(d, client) for d in descriptors))
        resolved = sum(1 for d in descriptors if d.resolved)
        logger.info("[attachments:resolve] OUT resolved=%d unresolved=%d", resolved, len(descriptors) - resolved)
        return descriptors

    async def _resolve_one(self, d: AttachmentDescriptor, client: httpx.AsyncClient) -> None:
        if d.source is AttachmentSource.INLINE_TEXT:
            self._resolve_inline(d)
            return
        try:
            await self._resolve_external(d, client)
        except httpx.HTTPError as e:
            logger.warning("[attachments:resolve] fetch failed name=%r: %s", d.name, e)
            d.mark_unresolved(f"fetch failed: {e}")
        except Exception as e:
            logger.warning("[attachments:resolve] extraction failed name=%r: %s", d.name, e)
            d.mark_unresolved(f"extraction failed: {e}")

    def _resolve_inline(self, d: AttachmentDescriptor) -> None:
        d.resolved_text = d.text
        d.unresolved_reason = None

    async def _token(self, client: httpx.AsyncClient) -> str | None:
        # one refresh attempt per resolver, successful or not
        async with self._token_lock:
            if self.credentials.is_stale() and not self._refresh_attempted:
                self._refresh_attempted = True
                await self.credentials.refresh(client)
            return self.credentials.access_token

    async def _resolve_external(self, d: AttachmentDescriptor, client: httpx.AsyncClient) -> None:
        if not d.external_ref:
            d.mark_unresolved("no inline text and no external reference")
            return
        token = await self._token(client)
        if not token:
            d.mark_unresolved("no access token for external documents")
            return
        headers = {"Authorization": f"Bearer {token}"}
        file_url = f"{self.api_base}/{quote(d.external_ref, safe='')}"

        meta_resp = await client.get(
            file_url, params={"fields": "name,mimeType,size,webViewLink"}, headers=headers
        )
        if meta_resp.status_code != 200:
            d.mark_unresolved(f"metadata request failed ({meta_resp.status_code})")
            return
        meta = meta_resp.json()
        d.name = meta.get("name") or d.name
        d.declared_mime_type = meta.get("mimeType") or d.declared_mime_type
        d.link = meta.get("webViewLink") or d.link
        if meta.get("size"):
            d.size = int(meta["size"])

        mime = (d.declared_mime_type or "").lower()
        export_type = GOOGLE_EXPORTS.get(mime)
        if export_type:
            kind = ExtractorKind.TEXT
        else:
            kind = classify(mime, d.name)
        if kind is ExtractorKind.UNSUPPORTED:
            d.mark_unresolved(f"no content extraction available for mime type {mime or 'unknown'}")
            return

        if export_type:
            media_resp = await client.get(f"{file_url}/export", params={"mimeType": export_type}, headers=headers)
        else:
            media_resp = await client.get(file_url, params={"alt": "media"}, headers=headers)
        if media_resp.status_code != 200:
            d.mark_unresolved(f"download failed ({media_resp.status_code})")
            return

        try:
            raw_text = await asyncio.to_thread(bytes_to_text, media_resp.content, kind)
        except ExtractorUnavailableError as e:
            d.mark_unresolved(str(e))
            return
        text, truncated = truncate_text(clean_text(raw_text), self.max_chars)
        if truncated:
            text += "\n[truncated]"
        d.resolved_text = text
        d.unresolved_reason = None
        logger.info("[attachments:resolve] name=%r kind=%s text_len=%d", d.name, kind.value, len(text))


def build_context(descriptors: list[AttachmentDescriptor]) -> str:
    """One labelled block per attachment; unresolved ones keep their reason and link."""
    blocks = []
    for d in descriptors:
        if d.resolved:
            blocks.append(f"[Attachment: {d.name}]\n{d.resolved_text}")
        else:
            note = d.unresolved_reason or "unresolved"
            if d.link:
                note += f" ({d.link})"
            blocks.append(f"[Attachment: {d.name} - unresolved: {note}]")
    return "\n\n".join(blocks)


def merge_into_prompt(user_text: str, descriptors: list[AttachmentDescriptor]) -> str:
    """User text followed by the attachment context. Unchanged when there are no attachments."""
    if not descriptors:
        return user_text
    return f"{user_text}\n\n{build_context(descriptors)}"


def summarize(descriptors: list[AttachmentDescriptor]) -> str:
    """Short textual summary stored with the turn in place of attachment content."""
    if not descriptors:
        return ""
    return "\n\nAttachments: " + ", ".join(d.name for d in descriptors)
