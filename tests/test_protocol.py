"""Tests for frame decoding, event normalization and outbound commands."""

import json
import logging

import pytest

from live_client.errors import LiveProtocolError
from live_client.listeners import ListenerRegistry
from live_client.protocol import (
    FrameClassifier,
    classify,
    encode_command,
    normalize_conversation,
    normalize_event,
)
from live_client.types import EventKind, GroupMessage, Notification, PrivateMessage


@pytest.fixture
def routes():
    return {kind: ListenerRegistry(kind.value) for kind in EventKind}


@pytest.fixture
def classifier(routes):
    return FrameClassifier(routes)


class TestClassify:
    def test_group_id_wins(self):
        raw = {"group_id": "G1", "conversation_id": "C1", "type": "x"}
        assert classify(raw) == EventKind.GROUP_MESSAGE

    def test_conversation_before_notification(self):
        raw = {"conversation_id": "C1", "type": "x"}
        assert classify(raw) == EventKind.PRIVATE_MESSAGE

    def test_notification_by_type_or_notification_type(self):
        assert classify({"type": "new_follower"}) == EventKind.NOTIFICATION
        assert classify({"notification_type": "group_invite"}) == EventKind.NOTIFICATION

    def test_empty_values_count_as_absent(self):
        raw = {"group_id": "", "GroupId": None, "conversation_id": "C1"}
        assert classify(raw) == EventKind.PRIVATE_MESSAGE

    def test_unknown(self):
        assert classify({"id": "1", "message_text": "?"}) is None


class TestNormalize:
    def test_snake_case_private_message(self):
        event = normalize_event(
            {
                "id": 42,
                "conversation_id": 7,
                "sender": {"id": 3, "username": "ana", "avatar_url": "a.png"},
                "message_text": "hi",
                "created_at": "2024-01-01T10:00:00Z",
            }
        )
        assert isinstance(event, PrivateMessage)
        assert event.id == "42"
        assert event.conversation_id == "7"
        assert event.sender.id == "3"
        assert event.sender.username == "ana"
        assert event.sender.avatar_url == "a.png"
        assert event.body == "hi"
        assert event.created_at == "2024-01-01T10:00:00Z"
        assert event.pending is False

    def test_pascal_case_group_message(self):
        event = normalize_event(
            {
                "Id": "9",
                "GroupId": "G1",
                "Sender": {"Id": "5", "Username": "bo"},
                "MessageText": "yo",
                "CreatedAt": "2024-01-01T10:00:00Z",
            }
        )
        assert isinstance(event, GroupMessage)
        assert event.id == "9"
        assert event.group_id == "G1"
        assert event.channel_id == "G1"
        assert event.sender.id == "5"
        assert event.sender.username == "bo"
        assert event.body == "yo"

    def test_client_ref_is_carried(self):
        event = normalize_event(
            {"id": "1", "conversation_id": "C", "message_text": "x", "client_ref": "abc"}
        )
        assert event.client_ref == "abc"

    def test_notification(self):
        event = normalize_event(
            {
                "id": "n1",
                "type": "follow_request",
                "title": "New request",
                "message": "ana wants to follow you",
                "payload": {"requester_id": "3"},
                "needs_action": True,
                "count": 2,
            }
        )
        assert isinstance(event, Notification)
        assert event.notification_type == "follow_request"
        assert event.body == "ana wants to follow you"
        assert event.payload == {"requester_id": "3"}
        assert event.needs_action is True
        assert event.count == 2

    def test_raw_dict_kept(self):
        raw = {"id": "1", "group_id": "G", "extra": True}
        assert normalize_event(raw).raw == raw

    def test_sender_without_id_is_dropped(self):
        event = normalize_event({"id": "1", "group_id": "G", "sender": {"username": "x"}})
        assert event.sender is None


class TestDecode:
    def test_single_object(self, classifier):
        events = classifier.decode('{"id": "1", "group_id": "G1"}')
        assert [e.id for e in events] == ["1"]

    def test_batch_keeps_order(self, classifier):
        frame = json.dumps(
            [
                {"id": "1", "group_id": "G1"},
                {"id": "2", "conversation_id": "C1"},
                {"id": "3", "type": "like"},
            ]
        )
        events = classifier.decode(frame)
        assert [(e.kind, e.id) for e in events] == [
            (EventKind.GROUP_MESSAGE, "1"),
            (EventKind.PRIVATE_MESSAGE, "2"),
            (EventKind.NOTIFICATION, "3"),
        ]

    def test_bytes_frame(self, classifier):
        assert len(classifier.decode(b'{"id": "1", "group_id": "G1"}')) == 1

    def test_size_limit_counts_encoded_bytes(self, classifier, monkeypatch, caplog):
        monkeypatch.setattr("live_client.protocol.MAX_MESSAGE_SIZE", 40)
        frame = '{"id": "1", "group_id": "éééééééééééé"}'
        assert len(frame) <= 40 < len(frame.encode("utf-8"))
        with caplog.at_level(logging.WARNING, logger="live_client"):
            assert classifier.decode(frame) == []
        assert classifier.dropped == 1
        assert "exceeds max size" in caplog.text
        assert len(classifier.decode('{"id": "1", "group_id": "G1"}')) == 1

    @pytest.mark.parametrize("frame", ["", "   ", "\n"])
    def test_empty_frames_skipped_silently(self, classifier, frame):
        assert classifier.decode(frame) == []
        assert classifier.dropped == 0

    def test_invalid_json_dropped(self, classifier, caplog):
        with caplog.at_level(logging.WARNING, logger="live_client"):
            assert classifier.decode("{not json") == []
        assert classifier.dropped == 1
        assert "Failed to parse frame" in caplog.text

    def test_bare_string_is_server_error(self, classifier, caplog):
        with caplog.at_level(logging.WARNING, logger="live_client"):
            assert classifier.decode('"failed to send message"') == []
        assert "Server error frame: failed to send message" in caplog.text

    def test_unknown_items_dropped_individually(self, classifier):
        frame = json.dumps([{"foo": 1}, {"id": "2", "group_id": "G"}, "junk"])
        events = classifier.decode(frame)
        assert [e.id for e in events] == ["2"]
        assert classifier.dropped == 2


class TestFeed:
    def test_routes_by_kind_in_arrival_order(self, classifier, routes):
        seen = []
        for kind, registry in routes.items():
            registry.add(lambda e, kind=kind: seen.append((kind, e.id)))

        classifier.feed(json.dumps([{"id": "1", "type": "x"}, {"id": "2", "group_id": "G"}]))
        classifier.feed('{"id": "3", "conversation_id": "C"}')

        assert seen == [
            (EventKind.NOTIFICATION, "1"),
            (EventKind.GROUP_MESSAGE, "2"),
            (EventKind.PRIVATE_MESSAGE, "3"),
        ]

    def test_kind_without_route_is_ignored(self):
        registry = ListenerRegistry("group")
        seen = []
        registry.add(seen.append)
        classifier = FrameClassifier({EventKind.GROUP_MESSAGE: registry})

        events = classifier.feed(json.dumps([{"id": "1", "type": "x"}, {"id": "2", "group_id": "G"}]))
        assert len(events) == 2
        assert [e.id for e in seen] == ["2"]


class TestEncodeCommand:
    def test_subscribe(self):
        assert encode_command("sub", "42") == "sub:42"
        assert encode_command("unsub", "42") == "unsub:42"

    def test_chat_payload_is_compact_json(self):
        command = encode_command(
            "private_chat", {"interlocutor_id": "7", "message_text": "hi"}
        )
        assert command == 'private_chat:{"interlocutor_id":"7","message_text":"hi"}'

    def test_unknown_keyword(self):
        with pytest.raises(LiveProtocolError):
            encode_command("drop_table", "x")

    def test_empty_payload(self):
        with pytest.raises(LiveProtocolError):
            encode_command("sub", "")


class TestNormalizeConversation:
    def test_gateway_preview(self):
        summary = normalize_conversation(
            {
                "ConversationId": 5,
                "UpdatedAt": "2024-02-01T00:00:00Z",
                "Interlocutor": {"id": "9", "username": "zed"},
                "LastMessage": {"id": "77", "sender": {"id": "9"}, "message_text": "hey"},
                "UnreadCount": 3,
            }
        )
        assert summary.conversation_id == "5"
        assert summary.interlocutor.username == "zed"
        assert summary.last_message.id == "77"
        assert summary.last_message.conversation_id == "5"
        assert summary.unread_count == 3
        assert summary.updated_at == "2024-02-01T00:00:00Z"

    def test_preview_without_messages(self):
        summary = normalize_conversation({"ConversationId": "5", "LastMessage": {}})
        assert summary.last_message is None
        assert summary.interlocutor is None
