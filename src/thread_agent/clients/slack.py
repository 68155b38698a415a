"""Slack Web API client and the capture/notify capabilities built on it."""

from __future__ import annotations

import logging
from typing import Any

import requests

from thread_agent.errors import SlackAuthError, SlackError, SlackRateLimitError
from thread_agent.models import ThreadRef
from thread_agent.pipeline import NotificationAck, PublishReceipt, ThreadContent, ThreadMessage

logger = logging.getLogger(__name__)

AUTH_ERRORS = frozenset(
    {"invalid_auth", "not_authed", "account_inactive", "token_revoked", "missing_scope"}
)
NOT_FOUND_ERRORS = frozenset(
    {"channel_not_found", "thread_not_found", "message_not_found", "not_in_channel"}
)

REPLIES_PAGE_SIZE = 200


def slack_permalink(channel_id: str, thread_ts: str) -> str:
    return f"https://slack.com/app_redirect?channel={channel_id}&message_ts={thread_ts}"


def _api_error(method: str, error: str | None) -> SlackError:
    context = {"method": method, "slack_error": error}
    if error in AUTH_ERRORS:
        return SlackAuthError(f"Slack authentication failed: {error}", context=context)
    if error == "ratelimited":
        return SlackRateLimitError(f"Slack rate limit hit on {method}", context=context)
    if error in NOT_FOUND_ERRORS:
        return SlackError(
            f"Slack {method} failed: {error}",
            code=f"slack.{error}",
            context=context,
            retryable=False,
        )
    return SlackError(f"Slack {method} failed: {error}", context=context)


class SlackClient:
    """Small requests-based wrapper for the Slack Web API methods we use."""

    def __init__(
        self,
        *,
        token: str,
        base_url: str = "https://slack.com/api",
        timeout: float = 30,
        session: requests.Session | None = None,
    ) -> None:
        if not token:
            raise ValueError("Slack bot token is required")
        self._base_url = base_url.rstrip("/")
        self._timeout = timeout
        self._session = session or requests.Session()
        self._session.headers.update(
            {
                "Authorization": f"Bearer {token}",
                "User-Agent": "thread-agent",
            }
        )

    def close(self) -> None:
        self._session.close()

    def _call(
        self,
        method: str,
        *,
        params: dict[str, Any] | None = None,
        payload: dict[str, Any] | None = None,
    ) -> dict[str, Any]:
        url = f"{self._base_url}/{method}"
        if payload is not None:
            resp = self._session.post(url, json=payload, timeout=self._timeout)
        else:
            resp = self._session.get(url, params=params, timeout=self._timeout)

        if resp.status_code == 429:
            raise SlackRateLimitError(
                f"Slack rate limit hit on {method}",
                context={"method": method, "retry_after": resp.headers.get("Retry-After")},
            )
        if resp.status_code >= 500:
            raise SlackError(
                f"Slack {method} returned HTTP {resp.status_code}",
                context={"method": method, "status_code": resp.status_code},
            )

        data: dict[str, Any] = resp.json()
        if not data.get("ok"):
            raise _api_error(method, data.get("error"))
        return data

    def fetch_thread(self, *, channel_id: str, thread_ts: str) -> list[dict[str, Any]]:
        """Return every message of a thread, parent first, following pagination cursors."""

        messages: list[dict[str, Any]] = []
        cursor: str | None = None
        while True:
            params: dict[str, Any] = {
                "channel": channel_id,
                "ts": thread_ts,
                "limit": REPLIES_PAGE_SIZE,
            }
            if cursor:
                params["cursor"] = cursor
            data = self._call("conversations.replies", params=params)
            messages.extend(data.get("messages") or [])

            cursor = (data.get("response_metadata") or {}).get("next_cursor") or None
            if not data.get("has_more") or not cursor:
                break

        logger.debug(
            "Fetched Slack thread",
            extra={"channel_id": channel_id, "thread_ts": thread_ts, "count": len(messages)},
        )
        return messages

    def post_message(
        self, *, channel_id: str, text: str, thread_ts: str | None = None
    ) -> dict[str, Any]:
        payload: dict[str, Any] = {"channel": channel_id, "text": text}
        if thread_ts:
            payload["thread_ts"] = thread_ts
        return self._call("chat.postMessage", payload=payload)


def _to_message(raw: dict[str, Any]) -> ThreadMessage:
    return ThreadMessage(
        user=raw.get("user") or raw.get("bot_id"),
        text=raw.get("text") or "",
        ts=str(raw.get("ts") or ""),
    )


class SlackThreadCapture:
    def __init__(self, client: SlackClient) -> None:
        self._client = client

    def capture(self, thread_ref: ThreadRef) -> ThreadContent:
        raw = self._client.fetch_thread(
            channel_id=thread_ref.channel_id, thread_ts=thread_ref.thread_ts
        )
        if not raw:
            raise SlackError(
                "Parent message not found",
                code="slack.thread_not_found",
                context={"channel_id": thread_ref.channel_id, "thread_ts": thread_ref.thread_ts},
                retryable=False,
            )
        parent, *replies = raw
        return ThreadContent(
            source=thread_ref,
            parent_message=_to_message(parent),
            replies=[_to_message(reply) for reply in replies],
        )


class SlackNotifier:
    """Reply in the source thread with a link to the published document."""

    def __init__(self, client: SlackClient) -> None:
        self._client = client

    def notify(self, receipt: PublishReceipt) -> NotificationAck:
        label = receipt.title or "View in Notion"
        text = f"Thread saved to Notion: <{receipt.url}|{label}>"
        data = self._client.post_message(
            channel_id=receipt.source.channel_id,
            text=text,
            thread_ts=receipt.source.thread_ts,
        )
        return NotificationAck(
            source=receipt.source,
            channel_id=str(data.get("channel") or receipt.source.channel_id),
            message_ts=str(data.get("ts") or ""),
            page_id=receipt.page_id,
            document_url=receipt.url,
        )
