"""Gmail API message store: change log, message fetch and reply sending."""

from __future__ import annotations

import base64
import logging
from email.message import EmailMessage

from googleapiclient.errors import HttpError
from tenacity import retry, retry_if_exception, stop_after_attempt, wait_exponential

from .constants import (
    AUTO_REPLY_HEADER,
    AUTO_REPLY_HEADER_VALUE,
    HISTORY_PAGE_SIZE,
    HISTORY_TYPES,
)
from .cursor import to_cursor
from .errors import CursorInvalidated, SendFailed
from .models import ChangeBatch, ChangeEvent, Message

logger = logging.getLogger(__name__)


def _is_retryable_http_error(exc: BaseException) -> bool:
    return isinstance(exc, HttpError) and exc.resp.status in (429, 500, 503)


_gmail_retry = retry(
    retry=retry_if_exception(_is_retryable_http_error),
    wait=wait_exponential(multiplier=1, min=1, max=60),
    stop=stop_after_attempt(5),
    reraise=True,
)


def _decode_body(data: str) -> str:
    return base64.urlsafe_b64decode(data + "=" * (-len(data) % 4)).decode("utf-8", errors="ignore")


def extract_body(payload: dict) -> str:
    """Return the text/plain body of a message payload.

    Walks nested multipart structures; falls back to text/html when the
    message has no plain-text part.
    """
    plain: list[str] = []
    html: list[str] = []

    def _walk(part: dict) -> None:
        for child in part.get("parts", []):
            _walk(child)
        data = part.get("body", {}).get("data")
        if not data:
            return
        mime_type = part.get("mimeType", "")
        if mime_type == "text/plain":
            plain.append(_decode_body(data))
        elif mime_type == "text/html":
            html.append(_decode_body(data))

    _walk(payload)
    if plain:
        return "".join(plain)
    if html:
        return "".join(html)
    return ""


def parse_message(response: dict) -> Message:
    """Convert a ``messages.get(format="full")`` response into a Message."""
    payload = response.get("payload", {})
    headers: dict[str, str] = {}
    for h in payload.get("headers", []):
        headers[h["name"]] = h["value"]

    return Message(
        id=response["id"],
        thread_id=response.get("threadId", ""),
        subject=headers.get("Subject", ""),
        from_address=headers.get("From", ""),
        body_text=extract_body(payload),
        labels=response.get("labelIds", []),
        headers=headers,
    )


def build_reply(original: Message, reply_text: str, sender: str | None = None) -> EmailMessage:
    """Compose the reply to ``original``, tagged with the self-reply marker."""
    subject = original.subject
    reply = EmailMessage()
    reply["To"] = original.from_address
    if sender:
        reply["From"] = sender
    reply["Subject"] = subject if subject.lower().startswith("re:") else f"Re: {subject}"
    message_id = original.header("Message-ID")
    if message_id:
        reply["In-Reply-To"] = message_id
        reply["References"] = message_id
    reply[AUTO_REPLY_HEADER] = AUTO_REPLY_HEADER_VALUE
    reply.set_content(reply_text)
    return reply


class GmailMessageStore:
    """MessageStore backed by the Gmail API for the authenticated user."""

    def __init__(self, service) -> None:
        self.service = service

    @_gmail_retry
    def current_position(self) -> tuple[str, int]:
        profile = self.service.users().getProfile(userId="me").execute()
        return profile["emailAddress"], to_cursor(profile["historyId"])

    @_gmail_retry
    def _history_page(self, cursor: int, page_token: str | None) -> dict:
        kwargs: dict = {
            "userId": "me",
            "startHistoryId": str(cursor),
            "historyTypes": HISTORY_TYPES,
            "maxResults": HISTORY_PAGE_SIZE,
        }
        if page_token:
            kwargs["pageToken"] = page_token
        return self.service.users().history().list(**kwargs).execute()

    def changes_since(self, cursor: int) -> ChangeBatch:
        """List messages added after ``cursor``, handling pagination."""
        events: list[ChangeEvent] = []
        new_cursor = cursor
        page_token: str | None = None

        while True:
            try:
                resp = self._history_page(cursor, page_token)
            except HttpError as exc:
                if exc.resp.status == 404:
                    raise CursorInvalidated(f"historyId {cursor} is no longer valid") from exc
                raise

            for record in resp.get("history", []):
                new_cursor = max(new_cursor, to_cursor(record["id"]))
                for added in record.get("messagesAdded", []):
                    events.append(ChangeEvent(message_id=added["message"]["id"]))

            if resp.get("historyId"):
                new_cursor = max(new_cursor, to_cursor(resp["historyId"]))

            page_token = resp.get("nextPageToken")
            if not page_token:
                break

        return ChangeBatch(events=events, new_cursor=new_cursor)

    @_gmail_retry
    def get(self, message_id: str) -> Message:
        resp = self.service.users().messages().get(userId="me", id=message_id, format="full").execute()
        return parse_message(resp)

    def send(self, raw_message: bytes | str, thread_id: str | None = None) -> dict:
        """Send an already composed RFC 5322 message. Not retried."""
        if isinstance(raw_message, bytes):
            raw = base64.urlsafe_b64encode(raw_message).decode("ascii")
        else:
            raw = raw_message
        body: dict = {"raw": raw}
        if thread_id:
            body["threadId"] = thread_id
        try:
            return self.service.users().messages().send(userId="me", body=body).execute()
        except HttpError as exc:
            raise SendFailed(f"Gmail rejected reply: {exc}") from exc
