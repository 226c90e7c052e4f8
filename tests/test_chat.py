from datetime import datetime
from unittest.mock import AsyncMock, patch

import pytest
from bson import ObjectId
from pymongo.errors import DuplicateKeyError

from devcircle.routers import chat
from devcircle.routers.chat import participants_key
from tests.helpers import cursor, insert_result, update_result


@pytest.fixture
def client(make_client):
    return make_client(chat.router, prefix="/chat")


@pytest.fixture
def conversation(current_user):
    return {
        "_id": ObjectId(),
        "participants": [current_user["_id"], ObjectId()],
        "lastMessage": None,
        "updatedAt": datetime(2024, 5, 1, 12, 0),
    }


class TestStartConversation:

    def test_participant_required(self, client):
        response = client.post("/chat/conversations", json={})

        assert response.status_code == 400
        assert response.json()["message"] == "Participant ID is required"

    def test_cannot_message_self(self, client, current_user):
        response = client.post("/chat/conversations", json={"participantId": str(current_user["_id"])})

        assert response.status_code == 400

    @patch('devcircle.routers.chat.users_coll')
    def test_unknown_participant(self, mock_users_coll, client):
        mock_users_coll.find_one = AsyncMock(return_value=None)

        response = client.post("/chat/conversations", json={"participantId": str(ObjectId())})

        assert response.status_code == 404

    @patch('devcircle.services.connection_manager.connections_coll')
    @patch('devcircle.routers.chat.users_coll')
    def test_requires_accepted_connection(self, mock_users_coll, mock_connections_coll, client):
        other_id = ObjectId()
        mock_users_coll.find_one = AsyncMock(return_value={"_id": other_id})
        mock_connections_coll.find_one = AsyncMock(return_value=None)

        response = client.post("/chat/conversations", json={"participantId": str(other_id)})

        assert response.status_code == 403
        assert mock_connections_coll.find_one.call_args[0][0]["status"] == "accepted"

    @patch('devcircle.services.connection_manager.users_coll')
    @patch('devcircle.services.connection_manager.connections_coll')
    @patch('devcircle.routers.chat.conversations_coll')
    @patch('devcircle.routers.chat.users_coll')
    def test_upserts_conversation_by_pair(
        self, mock_users_coll, mock_conversations_coll, mock_connections_coll, mock_cm_users_coll,
        client, current_user,
    ):
        other_id, conversation_id = ObjectId(), ObjectId()
        mock_users_coll.find_one = AsyncMock(return_value={"_id": other_id})
        mock_connections_coll.find_one = AsyncMock(return_value={"status": "accepted"})
        mock_conversations_coll.find_one_and_update = AsyncMock(return_value={
            "_id": conversation_id, "participants": [current_user["_id"], other_id],
        })
        mock_cm_users_coll.find.return_value = cursor([
            {"_id": current_user["_id"], "firstName": "Alice"},
            {"_id": other_id, "firstName": "Bruno"},
        ])

        response = client.post("/chat/conversations", json={"participantId": str(other_id)})

        assert response.status_code == 200
        data = response.json()["data"]
        assert data["_id"] == str(conversation_id)
        assert [p["firstName"] for p in data["participants"]] == ["Alice", "Bruno"]

        query, update = mock_conversations_coll.find_one_and_update.call_args[0]
        assert query == {"participantsKey": participants_key(current_user["_id"], other_id)}
        assert update["$setOnInsert"]["participants"] == [current_user["_id"], other_id]
        assert mock_conversations_coll.find_one_and_update.call_args[1]["upsert"] is True

    @patch('devcircle.services.connection_manager.users_coll')
    @patch('devcircle.services.connection_manager.connections_coll')
    @patch('devcircle.routers.chat.conversations_coll')
    @patch('devcircle.routers.chat.users_coll')
    def test_concurrent_open_returns_winning_conversation(
        self, mock_users_coll, mock_conversations_coll, mock_connections_coll, mock_cm_users_coll,
        client, conversation,
    ):
        other_id = conversation["participants"][1]
        mock_users_coll.find_one = AsyncMock(return_value={"_id": other_id})
        mock_connections_coll.find_one = AsyncMock(return_value={"status": "accepted"})
        mock_conversations_coll.find_one_and_update = AsyncMock(
            side_effect=DuplicateKeyError("E11000 duplicate key error")
        )
        mock_conversations_coll.find_one = AsyncMock(return_value=conversation)
        mock_cm_users_coll.find.return_value = cursor([])

        response = client.post("/chat/conversations", json={"participantId": str(other_id)})

        assert response.status_code == 200
        assert response.json()["data"]["_id"] == str(conversation["_id"])


def test_participants_key_ignores_order():
    a, b = ObjectId(), ObjectId()
    assert participants_key(a, b) == participants_key(b, a)
    assert participants_key(a, b) != participants_key(a, ObjectId())


class TestConversationList:

    @patch('devcircle.services.connection_manager.users_coll')
    @patch('devcircle.routers.chat.messages_coll')
    @patch('devcircle.routers.chat.conversations_coll')
    def test_list_with_last_message(
        self, mock_conversations_coll, mock_messages_coll, mock_cm_users_coll, client, conversation,
    ):
        message_id = ObjectId()
        conversation["lastMessage"] = message_id
        conversations = cursor([conversation])
        mock_conversations_coll.find.return_value = conversations
        mock_messages_coll.find.return_value = cursor([{"_id": message_id, "content": "hi"}])
        mock_cm_users_coll.find.return_value = cursor([])

        response = client.get("/chat/conversations/list")

        assert response.status_code == 200
        data = response.json()["data"]
        assert data[0]["lastMessage"]["content"] == "hi"
        conversations.sort.assert_called_once_with("updatedAt", -1)

    @patch('devcircle.routers.chat.conversations_coll')
    def test_empty_list(self, mock_conversations_coll, client):
        mock_conversations_coll.find.return_value = cursor([])

        response = client.get("/chat/conversations/list")

        assert response.json()["data"] == []


class TestMessages:

    @patch('devcircle.services.connection_manager.users_coll')
    @patch('devcircle.routers.chat.messages_coll')
    @patch('devcircle.routers.chat.conversations_coll')
    def test_reading_marks_others_messages(
        self, mock_conversations_coll, mock_messages_coll, mock_cm_users_coll,
        client, conversation, current_user,
    ):
        other_id = conversation["participants"][1]
        mock_conversations_coll.find_one = AsyncMock(return_value=conversation)
        mock_messages_coll.find.return_value = cursor([
            {"_id": ObjectId(), "sender": other_id, "content": "hello", "readBy": [other_id]},
        ])
        mock_messages_coll.update_many = AsyncMock(return_value=update_result(1))
        mock_cm_users_coll.find.return_value = cursor([{"_id": other_id, "firstName": "Bruno"}])

        response = client.get(f"/chat/conversations/{conversation['_id']}/messages")

        assert response.status_code == 200
        assert response.json()["data"][0]["sender"]["firstName"] == "Bruno"
        query, update = mock_messages_coll.update_many.call_args[0]
        assert query["sender"] == {"$ne": current_user["_id"]}
        assert update == {"$addToSet": {"readBy": current_user["_id"]}}

    @patch('devcircle.routers.chat.conversations_coll')
    def test_non_participant_gets_404(self, mock_conversations_coll, client):
        mock_conversations_coll.find_one = AsyncMock(return_value=None)

        response = client.get(f"/chat/conversations/{ObjectId()}/messages")

        assert response.status_code == 404

    @patch('devcircle.routers.chat.messages_coll')
    @patch('devcircle.routers.chat.conversations_coll')
    def test_send_message(self, mock_conversations_coll, mock_messages_coll, client, conversation, current_user):
        message_id = ObjectId()
        mock_conversations_coll.find_one = AsyncMock(return_value=conversation)
        mock_conversations_coll.update_one = AsyncMock()
        mock_messages_coll.insert_one = AsyncMock(return_value=insert_result(message_id))

        response = client.post(
            f"/chat/conversations/{conversation['_id']}/messages", json={"content": "  hi there  "}
        )

        assert response.status_code == 201
        data = response.json()["data"]
        assert data["content"] == "hi there"
        assert data["readBy"] == [str(current_user["_id"])]
        assert data["sender"]["firstName"] == "Alice"
        update = mock_conversations_coll.update_one.call_args[0][1]
        assert update["$set"]["lastMessage"] == message_id

    @pytest.mark.parametrize("content", [None, "", "   ", "x" * 1001])
    def test_rejects_blank_or_long_messages(self, client, content):
        response = client.post(f"/chat/conversations/{ObjectId()}/messages", json={"content": content})

        assert response.status_code == 400

    @patch('devcircle.routers.chat.messages_coll')
    @patch('devcircle.routers.chat.conversations_coll')
    def test_accepts_message_at_length_limit(self, mock_conversations_coll, mock_messages_coll, client, conversation):
        mock_conversations_coll.find_one = AsyncMock(return_value=conversation)
        mock_conversations_coll.update_one = AsyncMock()
        mock_messages_coll.insert_one = AsyncMock(return_value=insert_result(ObjectId()))

        response = client.post(
            f"/chat/conversations/{conversation['_id']}/messages", json={"content": "x" * 1000}
        )

        assert response.status_code == 201

    @patch('devcircle.routers.chat.messages_coll')
    @patch('devcircle.routers.chat.conversations_coll')
    def test_mark_read(self, mock_conversations_coll, mock_messages_coll, client, conversation):
        mock_conversations_coll.find_one = AsyncMock(return_value=conversation)
        mock_messages_coll.update_many = AsyncMock(return_value=update_result(3))

        response = client.patch(f"/chat/conversations/{conversation['_id']}/read")

        assert response.status_code == 200
        assert response.json()["modifiedCount"] == 3
