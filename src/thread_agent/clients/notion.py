"""Notion REST client and the publish capability built on it."""

from __future__ import annotations

import logging
import re
from datetime import UTC, datetime
from typing import Any

import requests

from thread_agent.errors import NotionAuthError, NotionError, NotionRateLimitError
from thread_agent.pipeline import Document, PublishReceipt

logger = logging.getLogger(__name__)

TEXT_CHUNK_SIZE = 2000
MAX_BLOCKS = 100

_BULLET = re.compile(r"^[\s•\-\*]+")
_NUMBERED = re.compile(r"^\s*\d+\.\s*")
_HEADING = re.compile(r"^(#+)\s*")


def _error_for_status(resp: requests.Response) -> NotionError:
    status = resp.status_code
    try:
        body = resp.json()
    except ValueError:
        body = {}
    if not isinstance(body, dict):
        body = {}
    detail = body.get("message")
    context = {"status_code": status, "notion_code": body.get("code")}
    message = f"Notion API returned HTTP {status}: {detail or resp.reason}"

    if status == 401:
        return NotionAuthError(message, context=context)
    if status == 429:
        return NotionRateLimitError(
            message, context={**context, "retry_after": resp.headers.get("Retry-After")}
        )
    if status in (400, 403, 404):
        return NotionError(message, code=f"notion.http.{status}", context=context, retryable=False)
    return NotionError(message, context=context, retryable=status >= 500)


class NotionClient:
    def __init__(
        self,
        *,
        token: str,
        base_url: str = "https://api.notion.com/v1",
        notion_version: str = "2022-06-28",
        timeout: float = 30,
        session: requests.Session | None = None,
    ) -> None:
        if not token:
            raise ValueError("Notion token is required")
        self._base_url = base_url.rstrip("/")
        self._timeout = timeout
        self._session = session or requests.Session()
        self._session.headers.update(
            {
                "Authorization": f"Bearer {token}",
                "Notion-Version": notion_version,
                "Content-Type": "application/json",
                "User-Agent": "thread-agent",
            }
        )

    def close(self) -> None:
        self._session.close()

    def create_page(
        self,
        *,
        database_id: str,
        properties: dict[str, Any],
        children: list[dict[str, Any]],
    ) -> dict[str, Any]:
        payload = {
            "parent": {"database_id": database_id},
            "properties": properties,
            "children": children[:MAX_BLOCKS],
        }
        resp = self._session.post(f"{self._base_url}/pages", json=payload, timeout=self._timeout)
        if resp.status_code >= 400:
            raise _error_for_status(resp)
        data: dict[str, Any] = resp.json()
        logger.info(
            "Notion page created",
            extra={"page_id": data.get("id"), "database_id": database_id},
        )
        return data


def rich_text(text: str) -> list[dict[str, Any]]:
    """Split ``text`` into rich text objects that respect Notion's per-object limit."""

    chunks = [text[i : i + TEXT_CHUNK_SIZE] for i in range(0, len(text), TEXT_CHUNK_SIZE)] or [""]
    return [{"type": "text", "text": {"content": chunk}} for chunk in chunks]


def block(block_type: str, text: str) -> dict[str, Any]:
    return {"object": "block", "type": block_type, block_type: {"rich_text": rich_text(text)}}


def ai_content_blocks(body: str) -> list[dict[str, Any]]:
    """Turn markdown-ish model output into headings, list items and paragraphs."""

    blocks: list[dict[str, Any]] = []
    for paragraph in re.split(r"\n\s*\n", body):
        stripped = paragraph.strip()
        if not stripped:
            continue
        lines = [line for line in stripped.splitlines() if line.strip()]
        if stripped.startswith(("•", "-", "*")):
            blocks += [block("bulleted_list_item", _BULLET.sub("", line).strip()) for line in lines]
        elif re.match(r"^\d+\.", stripped):
            blocks += [block("numbered_list_item", _NUMBERED.sub("", line).strip()) for line in lines]
        elif match := _HEADING.match(stripped):
            level = min(len(match.group(1)), 3)
            blocks.append(block(f"heading_{level}", _HEADING.sub("", stripped).strip()))
        else:
            blocks.append(block("paragraph", stripped))
    return blocks


def build_page_blocks(document: Document) -> list[dict[str, Any]]:
    thread = document.thread
    parent = thread.parent_message
    blocks = [
        block("heading_1", "Slack Thread Analysis"),
        block("heading_2", "Thread Overview"),
        block("heading_3", "Original Message"),
        block("paragraph", parent.text or "No text content"),
    ]
    if parent.user:
        blocks.append(block("paragraph", f"User: {parent.user}"))

    if thread.replies:
        blocks.append(block("heading_3", f"Thread Replies ({len(thread.replies)})"))
        for index, reply in enumerate(thread.replies, start=1):
            line = f"Reply {index}"
            if reply.user:
                line += f" ({reply.user})"
            blocks.append(block("bulleted_list_item", f"{line}: {reply.text or 'No text content'}"))

    blocks.append(block("heading_2", "AI Analysis"))
    blocks += ai_content_blocks(document.body)

    blocks.append(block("heading_2", "Processing Metadata"))
    metadata = [
        f"Processed: {datetime.now(tz=UTC).strftime('%Y-%m-%d %H:%M:%S %Z')}",
        f"Channel ID: {thread.source.channel_id}",
        f"Thread TS: {thread.source.thread_ts}",
        f"Total Messages: {thread.message_count}",
    ]
    if document.model:
        metadata.append(f"AI Model: {document.model}")
    blocks += [block("paragraph", line) for line in metadata]

    return blocks[:MAX_BLOCKS]


class NotionPublisher:
    def __init__(self, client: NotionClient) -> None:
        self._client = client

    def publish(self, document: Document, destination: str) -> PublishReceipt:
        properties = {"Name": {"title": rich_text(document.title)}}
        page = self._client.create_page(
            database_id=destination,
            properties=properties,
            children=build_page_blocks(document),
        )
        return PublishReceipt(
            source=document.thread.source,
            page_id=str(page["id"]),
            url=str(page.get("url") or ""),
            database_id=destination,
            title=document.title,
        )
