"""Tests for the Gmail message store."""

import base64
from email import message_from_bytes
from unittest.mock import MagicMock

import httplib2
import pytest
from googleapiclient.errors import HttpError

from conftest import make_message
from gmail_auto_reply.errors import CursorInvalidated, SendFailed
from gmail_auto_reply.gmail_client import GmailMessageStore, build_reply, extract_body, parse_message


def _b64(text: str) -> str:
    return base64.urlsafe_b64encode(text.encode()).decode().rstrip("=")


def _http_error(status: int) -> HttpError:
    return HttpError(resp=httplib2.Response({"status": status}), content=b"error")


def test_parse_message_extracts_headers_and_plain_body():
    response = {
        "id": "m1",
        "threadId": "t1",
        "labelIds": ["INBOX", "UNREAD"],
        "payload": {
            "mimeType": "multipart/alternative",
            "headers": [
                {"name": "From", "value": "Jane <jane@client.example>"},
                {"name": "Subject", "value": "Quote request"},
                {"name": "Message-ID", "value": "<abc@mail.example>"},
            ],
            "parts": [
                {"mimeType": "text/plain", "body": {"data": _b64("Need a quote")}},
                {"mimeType": "text/html", "body": {"data": _b64("<p>Need a quote</p>")}},
            ],
        },
    }

    message = parse_message(response)

    assert message.id == "m1"
    assert message.thread_id == "t1"
    assert message.subject == "Quote request"
    assert message.sender_email == "jane@client.example"
    assert message.body_text == "Need a quote"
    assert message.labels == ["INBOX", "UNREAD"]
    assert message.header("message-id") == "<abc@mail.example>"


def test_extract_body_nested_multipart():
    payload = {
        "mimeType": "multipart/mixed",
        "parts": [
            {
                "mimeType": "multipart/alternative",
                "parts": [{"mimeType": "text/plain", "body": {"data": _b64("Nested text")}}],
            },
            {"mimeType": "application/pdf", "body": {"attachmentId": "x"}},
        ],
    }
    assert extract_body(payload) == "Nested text"


def test_extract_body_simple_and_html_only():
    assert extract_body({"mimeType": "text/plain", "body": {"data": _b64("Plain")}}) == "Plain"
    html_only = {"mimeType": "multipart/alternative", "parts": [{"mimeType": "text/html", "body": {"data": _b64("<b>Hi</b>")}}]}
    assert extract_body(html_only) == "<b>Hi</b>"
    assert extract_body({"mimeType": "text/plain", "body": {"size": 0}}) == ""


def test_build_reply_threads_and_marks():
    reply = build_reply(make_message("m9", subject="Partnership"), "Happy to talk.", sender="owner@infinite.example")
    parsed = message_from_bytes(reply.as_bytes())

    assert parsed["Subject"] == "Re: Partnership"
    assert parsed["From"] == "owner@infinite.example"
    assert parsed["References"] == "<m9@mail.example>"
    assert parsed["X-Auto-Reply"] == "true"
    assert "Happy to talk." in parsed.get_payload()


def test_build_reply_keeps_existing_re_prefix():
    reply = build_reply(make_message(subject="RE: Pricing", headers={"Message-ID": ""}), "Sure")
    assert reply["Subject"] == "RE: Pricing"
    assert reply["In-Reply-To"] is None


def test_current_position():
    service = MagicMock()
    service.users.return_value.getProfile.return_value.execute.return_value = {
        "emailAddress": "owner@infinite.example",
        "historyId": "4242",
    }
    assert GmailMessageStore(service).current_position() == ("owner@infinite.example", 4242)


def test_changes_since_paginates_in_order():
    service = MagicMock()
    history_list = service.users.return_value.history.return_value.list
    history_list.return_value.execute.side_effect = [
        {
            "history": [
                {"id": "101", "messagesAdded": [{"message": {"id": "a"}}]},
                {"id": "102", "messages": [{"id": "label-change-only"}]},
            ],
            "nextPageToken": "page2",
            "historyId": "110",
        },
        {
            "history": [{"id": "105", "messagesAdded": [{"message": {"id": "b"}}, {"message": {"id": "c"}}]}],
            "historyId": "110",
        },
    ]

    batch = GmailMessageStore(service).changes_since(100)

    assert [e.message_id for e in batch.events] == ["a", "b", "c"]
    assert batch.new_cursor == 110
    first_call = history_list.call_args_list[0].kwargs
    assert first_call["startHistoryId"] == "100"
    assert first_call["historyTypes"] == ["messageAdded"]
    assert history_list.call_args_list[-1].kwargs["pageToken"] == "page2"


def test_changes_since_without_history():
    service = MagicMock()
    service.users.return_value.history.return_value.list.return_value.execute.return_value = {"historyId": "120"}
    batch = GmailMessageStore(service).changes_since(100)
    assert batch.events == []
    assert batch.new_cursor == 120


def test_changes_since_stale_cursor_raises():
    service = MagicMock()
    service.users.return_value.history.return_value.list.return_value.execute.side_effect = _http_error(404)
    with pytest.raises(CursorInvalidated):
        GmailMessageStore(service).changes_since(1)


def test_send_encodes_raw_and_thread():
    service = MagicMock()
    send = service.users.return_value.messages.return_value.send
    send.return_value.execute.return_value = {"id": "sent1"}

    ack = GmailMessageStore(service).send(b"To: a@b.example\r\n\r\nHello", "t1")

    assert ack == {"id": "sent1"}
    body = send.call_args.kwargs["body"]
    assert body["threadId"] == "t1"
    assert base64.urlsafe_b64decode(body["raw"]) == b"To: a@b.example\r\n\r\nHello"


def test_send_failure_is_wrapped():
    service = MagicMock()
    service.users.return_value.messages.return_value.send.return_value.execute.side_effect = _http_error(400)
    with pytest.raises(SendFailed):
        GmailMessageStore(service).send(b"x", "t1")


def test_send_accepts_built_reply():
    service = MagicMock()
    send = service.users.return_value.messages.return_value.send
    reply = build_reply(make_message("m3"), "Thanks!", sender="owner@infinite.example")

    GmailMessageStore(service).send(reply.as_bytes(), "thread_m3")

    raw = send.call_args.kwargs["body"]["raw"]
    sent = message_from_bytes(base64.urlsafe_b64decode(raw))
    assert sent["X-Auto-Reply"] == "true"
    assert sent["Subject"] == "Re: Website pricing question"
