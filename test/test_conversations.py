"""
Tests for conversation routes

List / detail / update / delete / messages, all scoped to the acting user.
"""

import uuid

from fastapi import status

from conftest import ALICE_ID, BOB_ID


async def start_conversation(client, message: str, user_id: str = ALICE_ID) -> str:
    response = await client.post("/api/chat", json={"message": message, "user_id": user_id})
    assert response.status_code == status.HTTP_200_OK
    return response.headers["x-conversation-id"]


class TestListConversations:
    """GET /api/conversations"""

    async def test_lists_only_own(self, client, seed):
        mine = await start_conversation(client, "Alice question")
        await start_conversation(client, "Bob question", user_id=BOB_ID)

        response = await client.get("/api/conversations", params={"user_id": ALICE_ID})

        assert response.status_code == status.HTTP_200_OK
        body = response.json()
        assert body["total"] == 1
        item = body["items"][0]
        assert item["id"] == mine
        assert item["title"] == "Alice question"
        assert item["message_count"] == 2
        assert item["last_message_preview"] == "Hello from the assistant."
        assert item["metadata"]["message_count"] == 2
        assert item["metadata"]["total_tokens"] == 16

    async def test_newest_activity_first(self, client, seed):
        older = await start_conversation(client, "Older")
        newer = await start_conversation(client, "Newer")
        await client.post(
            "/api/chat",
            json={"message": "Bump", "user_id": ALICE_ID, "conversation_id": older},
        )

        body = (await client.get("/api/conversations", params={"user_id": ALICE_ID})).json()
        assert [item["id"] for item in body["items"]] == [older, newer]

    async def test_search_by_title(self, client, seed):
        await start_conversation(client, "Quarterly budget review")
        await start_conversation(client, "Lunch plans")

        body = (
            await client.get(
                "/api/conversations", params={"user_id": ALICE_ID, "search": "BUDGET"}
            )
        ).json()
        assert body["total"] == 1
        assert body["items"][0]["title"] == "Quarterly budget review"

    async def test_archived_filter_and_pagination(self, client, seed):
        ids = [await start_conversation(client, f"Chat {n}") for n in range(3)]
        await client.patch(
            f"/api/conversations/{ids[0]}",
            params={"user_id": ALICE_ID},
            json={"is_archived": True},
        )

        active = (
            await client.get(
                "/api/conversations", params={"user_id": ALICE_ID, "per_page": 1, "page": 2}
            )
        ).json()
        assert active["total"] == 2
        assert active["per_page"] == 1
        assert len(active["items"]) == 1

        archived = (
            await client.get(
                "/api/conversations", params={"user_id": ALICE_ID, "archived": "true"}
            )
        ).json()
        assert [item["id"] for item in archived["items"]] == [ids[0]]

    async def test_preview_truncated(self, client, seed, llm):
        llm.tokens = ["z" * 150]
        await start_conversation(client, "Long answer please")

        body = (await client.get("/api/conversations", params={"user_id": ALICE_ID})).json()
        assert body["items"][0]["last_message_preview"] == "z" * 100 + "..."


class TestConversationDetail:
    """GET /api/conversations/{id} and /messages"""

    async def test_detail_with_messages(self, client, seed):
        conversation_id = await start_conversation(client, "Hello")

        response = await client.get(
            f"/api/conversations/{conversation_id}", params={"user_id": ALICE_ID}
        )

        assert response.status_code == status.HTTP_200_OK
        body = response.json()
        assert [m["role"] for m in body["messages"]] == ["user", "assistant"]
        assert body["messages"][1]["metadata"]["tokens"] == 4

    async def test_not_visible_to_other_user(self, client, seed):
        conversation_id = await start_conversation(client, "Private")

        response = await client.get(
            f"/api/conversations/{conversation_id}", params={"user_id": BOB_ID}
        )
        assert response.status_code == status.HTTP_404_NOT_FOUND
        assert response.json()["code"] == "NOT_FOUND"

    async def test_malformed_id(self, client, seed):
        response = await client.get("/api/conversations/nope", params={"user_id": ALICE_ID})
        assert response.status_code == status.HTTP_404_NOT_FOUND

    async def test_messages_paginated(self, client, seed):
        conversation_id = await start_conversation(client, "First")
        await client.post(
            "/api/chat",
            json={"message": "Second", "user_id": ALICE_ID, "conversation_id": conversation_id},
        )

        response = await client.get(
            f"/api/conversations/{conversation_id}/messages",
            params={"user_id": ALICE_ID, "per_page": 2, "page": 2},
        )

        body = response.json()
        assert body["total"] == 4
        assert [m["content"] for m in body["items"]] == ["Second", "Hello from the assistant."]


class TestUpdateAndDelete:
    """PATCH / DELETE /api/conversations/{id}"""

    async def test_rename(self, client, seed):
        conversation_id = await start_conversation(client, "Untitled")

        response = await client.patch(
            f"/api/conversations/{conversation_id}",
            params={"user_id": ALICE_ID},
            json={"title": "  Renamed  "},
        )

        assert response.status_code == status.HTTP_200_OK
        assert response.json()["title"] == "Renamed"

    async def test_blank_title_rejected(self, client, seed):
        conversation_id = await start_conversation(client, "Untitled")

        response = await client.patch(
            f"/api/conversations/{conversation_id}",
            params={"user_id": ALICE_ID},
            json={"title": "   "},
        )
        assert response.status_code == status.HTTP_400_BAD_REQUEST

    async def test_delete(self, client, seed):
        conversation_id = await start_conversation(client, "Temporary")

        response = await client.delete(
            f"/api/conversations/{conversation_id}", params={"user_id": ALICE_ID}
        )
        assert response.status_code == status.HTTP_204_NO_CONTENT

        response = await client.get(
            f"/api/conversations/{conversation_id}", params={"user_id": ALICE_ID}
        )
        assert response.status_code == status.HTTP_404_NOT_FOUND

    async def test_delete_other_users_conversation(self, client, seed):
        conversation_id = await start_conversation(client, "Keep out")

        response = await client.delete(
            f"/api/conversations/{conversation_id}", params={"user_id": BOB_ID}
        )
        assert response.status_code == status.HTTP_404_NOT_FOUND

    async def test_delete_unknown(self, client, seed):
        response = await client.delete(
            f"/api/conversations/{uuid.uuid4()}", params={"user_id": ALICE_ID}
        )
        assert response.status_code == status.HTTP_404_NOT_FOUND
