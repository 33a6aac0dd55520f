"""Tests for webhook ingestion and worker-side message processing."""

from datetime import datetime, timezone
from unittest.mock import MagicMock, patch

import pytest

from fincas.domain.inbound import (
    HANDLE_MESSAGE_PATH,
    build_task_payload,
    ingest_event,
    process_inbound_message,
)
from fincas.domain.reply_composer import ReplyOutcome
from fincas.infra.repositories.processed_events_repository import (
    SOURCE_HANDLE_MESSAGE_TASK,
    SOURCE_YCLOUD,
)
from fincas.tasks.client import TaskEnqueueError, TasksClient, set_tasks_client
from fincas.whatsapp.models import InboundMessageEvent, MediaContent, OutboundMessageEvent, TextContent

from .helpers import fake_txn, make_cursor

PHONE = "+573001112233"


def _event(event_id: str = "evt_1", content=None) -> InboundMessageEvent:
    return InboundMessageEvent(
        event_id=event_id,
        phone=PHONE,
        name="Ana",
        content=content or TextContent(body="hola"),
        wamid="wamid.1",
        received_at=datetime(2026, 3, 1, tzinfo=timezone.utc),
    )


@pytest.fixture
def cur():
    cursor = make_cursor()
    with patch("fincas.domain.inbound.txn", fake_txn(cursor)):
        yield cursor


class TestIngestEvent:
    def test_new_event_enqueued(self, cur, inline_tasks):
        with patch("fincas.domain.inbound.record_processed_event", return_value=True) as mock_record:
            assert ingest_event(_event(), correlation_id="cid") == "enqueued"

        mock_record.assert_called_once_with(cur, SOURCE_YCLOUD, "evt_1")
        task = inline_tasks.get_scheduled_tasks(HANDLE_MESSAGE_PATH)[0]
        assert task["task_id"] == "ycloud:evt_1"
        assert task["correlation_id"] == "cid"
        assert task["payload"]["phone"] == PHONE
        assert task["payload"]["text"] == "hola"

    def test_duplicate_not_enqueued(self, cur, inline_tasks):
        with patch("fincas.domain.inbound.record_processed_event", return_value=False):
            assert ingest_event(_event()) == "duplicate"
        assert inline_tasks.get_scheduled_tasks() == []

    def test_refused_enqueue_raises_inside_transaction(self, cur):
        set_tasks_client(TasksClient(backend="http"))
        with patch("fincas.domain.inbound.record_processed_event", return_value=True), \
             patch("fincas.tasks.http_backend.enqueue_http", return_value=False):
            with pytest.raises(TaskEnqueueError):
                ingest_event(_event())

    def test_redelivery_after_refused_enqueue_is_sent(self, cur):
        client = TasksClient(backend="http")
        set_tasks_client(client)
        with patch("fincas.domain.inbound.record_processed_event", return_value=True), \
             patch("fincas.tasks.http_backend.enqueue_http", side_effect=[False, True]) as mock_enqueue:
            with pytest.raises(TaskEnqueueError):
                ingest_event(_event())
            assert ingest_event(_event()) == "enqueued"

        assert mock_enqueue.call_count == 2
        assert client.was_executed("ycloud:evt_1") is True

    def test_task_already_accepted_in_process_is_not_an_error(self, cur, inline_tasks):
        inline_tasks.enqueue_http("ycloud:evt_1", HANDLE_MESSAGE_PATH, {})
        with patch("fincas.domain.inbound.record_processed_event", return_value=True):
            assert ingest_event(_event()) == "enqueued"
        assert len(inline_tasks.get_scheduled_tasks()) == 1

    def test_outbound_marks_human(self, cur):
        with patch("fincas.domain.conversations.mark_human_on_outbound", return_value=True) as mock_mark:
            assert ingest_event(OutboundMessageEvent(event_id="evt_2", to_phone=PHONE)) == "marked_human"
        mock_mark.assert_called_once_with(cur, PHONE)

    def test_outbound_without_active_conversation(self, cur):
        with patch("fincas.domain.conversations.mark_human_on_outbound", return_value=False):
            result = ingest_event(OutboundMessageEvent(event_id="evt_2", to_phone=PHONE))
        assert result == "no_active_conversation"


def test_media_task_payload():
    payload = build_task_payload(
        _event(content=MediaContent(media_kind="image", link="https://cdn/x.jpg"))
    )
    assert payload["kind"] == "image"
    assert payload["text"] == "[Imagen]"
    assert payload["media_url"] == "https://cdn/x.jpg"
    assert payload["wamid"] == "wamid.1"


class TestProcessInboundMessage:
    @pytest.fixture
    def conv(self, cur):
        with patch("fincas.domain.inbound.record_processed_event", return_value=True) as record, \
             patch("fincas.domain.conversations.get_or_create_contact", return_value="contact-1"), \
             patch("fincas.domain.conversations.get_or_create_conversation", return_value=("conv-1", False)) as get_conv, \
             patch("fincas.domain.conversations.insert_message", return_value="1") as insert, \
             patch("fincas.domain.conversations.get_status", return_value="ai") as status, \
             patch("fincas.domain.conversations.touch_last_message_at") as touch:
            yield MagicMock(record=record, get_conv=get_conv, insert=insert, status=status, touch=touch)

    def _composer(self):
        composer = MagicMock()
        composer.reply.return_value = ReplyOutcome(reply_text="¡Hola!", text_sent=True)
        return composer

    def test_ai_conversation_replies(self, conv):
        composer = self._composer()
        result = process_inbound_message(
            task_id="ycloud:evt_1", phone=PHONE, name="Ana", text="hola",
            wamid="wamid.1", composer=composer,
        )

        assert result.status == "processed"
        assert result.conversation_id == "conv-1"
        assert result.outcome.text_sent is True
        conv.record.assert_called_once()
        assert conv.record.call_args.args[1:] == (SOURCE_HANDLE_MESSAGE_TASK, "ycloud:evt_1")
        assert conv.insert.call_args.args[1:] == ("conv-1", "user", "hola")
        composer.reply.assert_called_once_with(
            conversation_id="conv-1", phone=PHONE, text="hola", wamid="wamid.1", is_new=False,
        )
        conv.touch.assert_called_once()

    def test_new_conversation_flag_passed(self, conv):
        conv.get_conv.return_value = ("conv-9", True)
        composer = self._composer()
        result = process_inbound_message(
            task_id="t", phone=PHONE, name="Ana", text="hola", composer=composer,
        )
        assert result.is_new is True
        assert composer.reply.call_args.kwargs["is_new"] is True

    @pytest.mark.parametrize("status", ["human", "resolved"])
    def test_no_reply_unless_ai(self, conv, status):
        conv.status.return_value = status
        composer = self._composer()
        result = process_inbound_message(
            task_id="t", phone=PHONE, name="Ana", text="hola", composer=composer,
        )

        assert result.conversation_status == status
        assert result.outcome is None
        composer.reply.assert_not_called()
        conv.insert.assert_called_once()
        conv.touch.assert_called_once()

    def test_duplicate_task(self, conv):
        conv.record.return_value = False
        composer = self._composer()
        result = process_inbound_message(
            task_id="t", phone=PHONE, name="Ana", text="hola", composer=composer,
        )
        assert result.status == "duplicate"
        conv.insert.assert_not_called()
        composer.reply.assert_not_called()
