"""
Tests for the chat completion endpoint

Identity resolution, chatbot gating, conversation lifecycle, streaming
headers, persistence after the stream, and the JSON error contract.
"""

import uuid

from fastapi import status
from sqlalchemy import func, select

from assistant_platform.core.config import settings
from assistant_platform.models import Conversation, Message, Tenant, UsageMetric, User
from assistant_platform.schemas.chat import ChatRequest
from assistant_platform.services.chat_service import ChatService
from assistant_platform.services.conversation_service import ConversationService
from assistant_platform.services.usage_service import UsageService

from conftest import ACME_ID, ALICE_ID, BOB_ID


async def count(session_factory, model, *filters) -> int:
    async with session_factory() as session:
        result = await session.execute(select(func.count()).select_from(model).where(*filters))
        return result.scalar_one()


async def messages_of(session_factory, conversation_id: str) -> list[Message]:
    async with session_factory() as session:
        result = await session.execute(
            select(Message)
            .where(Message.conversation_id == conversation_id)
            .order_by(Message.created_at)
        )
        return list(result.scalars().all())


async def get_conversation(session_factory, conversation_id: str) -> Conversation:
    async with session_factory() as session:
        return await session.get(Conversation, conversation_id)


class TestNewConversation:
    """A turn without conversation_id"""

    async def test_creates_conversation_for_user(self, client, seed, session_factory, llm):
        response = await client.post("/api/chat", json={"message": "Hi", "user_id": ALICE_ID})

        assert response.status_code == status.HTTP_200_OK
        assert response.text == "Hello from the assistant."
        assert response.headers["content-type"].startswith("text/plain")
        assert response.headers["x-is-new-conversation"] == "true"

        conversation = await get_conversation(
            session_factory, response.headers["x-conversation-id"]
        )
        assert conversation.tenant_id == ACME_ID
        assert conversation.user_id == ALICE_ID
        assert conversation.title == "Hi"
        assert conversation.meta["model"] == "gpt-4o"

        stored = await messages_of(session_factory, conversation.id)
        assert [(m.role, m.content) for m in stored] == [
            ("user", "Hi"),
            ("assistant", "Hello from the assistant."),
        ]

    async def test_prompt_is_system_then_user(self, client, seed, llm):
        await client.post("/api/chat", json={"message": "Hi", "user_id": ALICE_ID})

        assert llm.last_messages == [
            {"role": "system", "content": "You are Acme's assistant."},
            {"role": "user", "content": "Hi"},
        ]
        assert llm.last_config.model == "gpt-4o"
        assert llm.last_config.temperature == 0.3

    async def test_assistant_metadata(self, client, seed, session_factory):
        response = await client.post("/api/chat", json={"message": "Hi", "user_id": ALICE_ID})

        stored = await messages_of(session_factory, response.headers["x-conversation-id"])
        meta = stored[-1].meta
        assert meta["model"] == "gpt-4o"
        assert meta["tokens"] == 4
        assert meta["prompt_tokens"] == 12
        assert meta["finish_reason"] == "stop"
        assert meta["latency_ms"] >= 0

    async def test_parts_message_shape(self, client, seed, session_factory):
        body = {
            "user_id": ALICE_ID,
            "messages": [
                {"role": "user", "parts": [{"type": "text", "text": "Earlier"}]},
                {"role": "assistant", "content": "Reply"},
                {"role": "user", "parts": [{"type": "text", "text": "Latest question"}]},
            ],
        }
        response = await client.post("/api/chat", json=body)

        assert response.status_code == status.HTTP_200_OK
        stored = await messages_of(session_factory, response.headers["x-conversation-id"])
        assert stored[0].content == "Latest question"

    async def test_two_calls_create_two_conversations(self, client, seed, session_factory):
        first = await client.post("/api/chat", json={"message": "One", "user_id": ALICE_ID})
        second = await client.post("/api/chat", json={"message": "Two", "user_id": ALICE_ID})

        assert first.headers["x-conversation-id"] != second.headers["x-conversation-id"]
        assert await count(session_factory, Conversation, Conversation.user_id == ALICE_ID) == 2


class TestTitleDerivation:
    """Title of a new conversation comes from its first message"""

    async def test_long_message_truncated(self, client, seed, session_factory):
        message = "x" * 80
        response = await client.post("/api/chat", json={"message": message, "user_id": ALICE_ID})

        conversation = await get_conversation(
            session_factory, response.headers["x-conversation-id"]
        )
        assert conversation.title == "x" * 50 + "..."

    async def test_short_message_verbatim(self, client, seed, session_factory):
        message = "y" * 30
        response = await client.post("/api/chat", json={"message": message, "user_id": ALICE_ID})

        conversation = await get_conversation(
            session_factory, response.headers["x-conversation-id"]
        )
        assert conversation.title == message

    async def test_follow_up_does_not_retitle(self, client, seed, session_factory):
        first = await client.post("/api/chat", json={"message": "Original", "user_id": ALICE_ID})
        conversation_id = first.headers["x-conversation-id"]
        await client.post(
            "/api/chat",
            json={"message": "Changed", "user_id": ALICE_ID, "conversation_id": conversation_id},
        )

        conversation = await get_conversation(session_factory, conversation_id)
        assert conversation.title == "Original"


class TestExistingConversation:
    """Appending turns to an existing conversation"""

    async def test_appends_and_counts(self, client, seed, session_factory):
        first = await client.post("/api/chat", json={"message": "Turn 1", "user_id": ALICE_ID})
        conversation_id = first.headers["x-conversation-id"]

        for n in (2, 3):
            response = await client.post(
                "/api/chat",
                json={
                    "message": f"Turn {n}",
                    "user_id": ALICE_ID,
                    "conversation_id": conversation_id,
                },
            )
            assert response.headers["x-conversation-id"] == conversation_id
            assert response.headers["x-is-new-conversation"] == "false"

        conversation = await get_conversation(session_factory, conversation_id)
        assert conversation.message_count == 6
        assert conversation.total_tokens == 3 * 16
        assert conversation.last_message_at is not None
        assert len(await messages_of(session_factory, conversation_id)) == 6
        assert await count(session_factory, Conversation, Conversation.user_id == ALICE_ID) == 1

    async def test_history_replayed_oldest_first(self, client, seed, llm):
        first = await client.post("/api/chat", json={"message": "Turn 1", "user_id": ALICE_ID})
        conversation_id = first.headers["x-conversation-id"]
        await client.post(
            "/api/chat",
            json={"message": "Turn 2", "user_id": ALICE_ID, "conversation_id": conversation_id},
        )

        assert llm.last_messages[1:] == [
            {"role": "user", "content": "Turn 1"},
            {"role": "assistant", "content": "Hello from the assistant."},
            {"role": "user", "content": "Turn 2"},
        ]

    async def test_other_users_conversation_not_found(self, client, seed, session_factory):
        first = await client.post("/api/chat", json={"message": "Mine", "user_id": ALICE_ID})
        conversation_id = first.headers["x-conversation-id"]

        response = await client.post(
            "/api/chat",
            json={"message": "Let me in", "user_id": BOB_ID, "conversation_id": conversation_id},
        )

        assert response.status_code == status.HTTP_404_NOT_FOUND
        assert response.json() == {
            "code": "NOT_FOUND",
            "message": "Conversation not found or access denied",
        }
        assert len(await messages_of(session_factory, conversation_id)) == 2

    async def test_unknown_conversation_not_found(self, client, seed):
        response = await client.post(
            "/api/chat",
            json={"message": "Hi", "user_id": ALICE_ID, "conversation_id": str(uuid.uuid4())},
        )
        assert response.status_code == status.HTTP_404_NOT_FOUND

    async def test_archived_conversation_not_found(self, client, seed, session_factory, llm):
        first = await client.post("/api/chat", json={"message": "Old", "user_id": ALICE_ID})
        conversation_id = first.headers["x-conversation-id"]
        async with session_factory() as session:
            conversation = await session.get(Conversation, conversation_id)
            conversation.is_archived = True
            await session.commit()
        calls_before = len(llm.calls)

        response = await client.post(
            "/api/chat",
            json={"message": "Again", "user_id": ALICE_ID, "conversation_id": conversation_id},
        )

        assert response.status_code == status.HTTP_404_NOT_FOUND
        assert response.json()["message"] == "Conversation not found or access denied"
        assert len(llm.calls) == calls_before


class TestHistoryCap:
    """Only the most recent messages are replayed"""

    async def test_load_history_keeps_latest(self, client, seed, session_factory):
        first = await client.post("/api/chat", json={"message": "Turn 1", "user_id": ALICE_ID})
        conversation_id = first.headers["x-conversation-id"]
        await client.post(
            "/api/chat",
            json={"message": "Turn 2", "user_id": ALICE_ID, "conversation_id": conversation_id},
        )

        async with session_factory() as session:
            history = await ConversationService.load_history(session, conversation_id, limit=3)

        assert history == [
            {"role": "assistant", "content": "Hello from the assistant."},
            {"role": "user", "content": "Turn 2"},
            {"role": "assistant", "content": "Hello from the assistant."},
        ]


class TestCompanyMode:
    """company_slug + user_email identity"""

    async def test_creates_guest_user(self, client, seed, session_factory):
        response = await client.post(
            "/api/chat",
            json={"message": "Hi", "company_slug": "acme-corp", "user_email": "New@Acme.com"},
        )

        assert response.status_code == status.HTTP_200_OK
        async with session_factory() as session:
            result = await session.execute(select(User).where(User.email == "new@acme.com"))
            user = result.scalar_one()
        assert user.tenant_id == ACME_ID
        assert user.role == "guest"
        assert user.name == "new"

        conversation = await get_conversation(
            session_factory, response.headers["x-conversation-id"]
        )
        assert conversation.user_id == user.id
        assert conversation.tenant_id == ACME_ID

    async def test_existing_user_reused(self, client, seed, session_factory):
        response = await client.post(
            "/api/chat",
            json={"message": "Hi", "company_slug": "acme-corp", "user_email": "alice@acme.com"},
        )

        conversation = await get_conversation(
            session_factory, response.headers["x-conversation-id"]
        )
        assert conversation.user_id == ALICE_ID
        assert await count(session_factory, User, User.tenant_id == ACME_ID) == 3

    async def test_given_name_used(self, client, seed, session_factory):
        await client.post(
            "/api/chat",
            json={
                "message": "Hi",
                "company_slug": "acme-corp",
                "user_email": "carol@acme.com",
                "user_name": "Carol C.",
            },
        )
        async with session_factory() as session:
            result = await session.execute(select(User).where(User.email == "carol@acme.com"))
            assert result.scalar_one().name == "Carol C."

    async def test_unknown_company(self, client, seed):
        response = await client.post(
            "/api/chat",
            json={"message": "Hi", "company_slug": "nope", "user_email": "a@acme.com"},
        )
        assert response.status_code == status.HTTP_404_NOT_FOUND
        assert response.json()["message"] == "Company not found"

    async def test_inactive_company(self, client, seed, session_factory):
        async with session_factory() as session:
            tenant = await session.get(Tenant, ACME_ID)
            tenant.is_active = False
            await session.commit()

        response = await client.post(
            "/api/chat",
            json={"message": "Hi", "company_slug": "acme-corp", "user_email": "a@acme.com"},
        )
        assert response.status_code == status.HTTP_404_NOT_FOUND

    async def test_bad_email(self, client, seed):
        response = await client.post(
            "/api/chat",
            json={"message": "Hi", "company_slug": "acme-corp", "user_email": "not-an-email"},
        )
        assert response.status_code == status.HTTP_400_BAD_REQUEST
        assert response.json()["code"] == "VALIDATION_ERROR"


class TestDemoAndUserId:
    """Fallback identity and user_id validation"""

    async def test_demo_identity(self, client, seed, session_factory):
        response = await client.post("/api/chat", json={"message": "Hi"})

        assert response.status_code == status.HTTP_200_OK
        conversation = await get_conversation(
            session_factory, response.headers["x-conversation-id"]
        )
        assert conversation.user_id == settings.DEMO_USER_ID
        assert conversation.tenant_id == settings.DEMO_TENANT_ID

    async def test_malformed_user_id(self, client, seed):
        response = await client.post("/api/chat", json={"message": "Hi", "user_id": "abc"})
        assert response.status_code == status.HTTP_400_BAD_REQUEST
        assert response.json() == {
            "code": "VALIDATION_ERROR",
            "message": "Invalid user_id format",
        }

    async def test_unknown_user_id(self, client, seed):
        response = await client.post(
            "/api/chat", json={"message": "Hi", "user_id": str(uuid.uuid4())}
        )
        assert response.status_code == status.HTTP_404_NOT_FOUND
        assert response.json()["message"] == "User not found"


class TestChatbotGate:
    """Published, same-tenant chatbots only"""

    async def test_chatbot_settings_applied(self, client, seed, session_factory, llm):
        response = await client.post(
            "/api/chat",
            json={"message": "Hi", "user_id": ALICE_ID, "chatbot_id": seed["acme_bot_id"]},
        )

        assert response.status_code == status.HTTP_200_OK
        config = llm.last_config
        assert config.model == "gpt-4o-mini"
        assert config.max_tokens == 512
        assert config.temperature == 0.3  # from the tenant
        assert config.system_prompt == "You are the Acme helper bot."
        assert config.model_params == {"top_p": 0.9}
        # gpt-4o-mini is not a reasoning model
        assert config.provider_options == {"store": True}

        conversation = await get_conversation(
            session_factory, response.headers["x-conversation-id"]
        )
        assert conversation.chatbot_id == seed["acme_bot_id"]

    async def test_request_overrides_chatbot(self, client, seed, llm):
        await client.post(
            "/api/chat",
            json={
                "message": "Hi",
                "user_id": ALICE_ID,
                "chatbot_id": seed["acme_bot_id"],
                "model": "o3-mini",
                "temperature": 1.5,
            },
        )
        assert llm.last_config.model == "o3-mini"
        assert llm.last_config.temperature == 1.5
        assert llm.last_config.provider_options == {"reasoning_effort": "high", "store": True}

    async def test_other_tenant_chatbot_rejected(self, client, seed, session_factory, llm):
        response = await client.post(
            "/api/chat",
            json={"message": "Hi", "user_id": ALICE_ID, "chatbot_id": seed["globex_bot_id"]},
        )

        assert response.status_code == status.HTTP_400_BAD_REQUEST
        assert response.json() == {
            "code": "VALIDATION_ERROR",
            "message": "Chatbot does not belong to this company",
        }
        assert await count(session_factory, Conversation) == 0
        assert await count(session_factory, Message) == 0
        assert llm.calls == []

    async def test_unpublished_chatbot_rejected(self, client, seed, session_factory, llm):
        response = await client.post(
            "/api/chat",
            json={"message": "Hi", "user_id": ALICE_ID, "chatbot_id": seed["acme_draft_bot_id"]},
        )

        assert response.status_code == status.HTTP_400_BAD_REQUEST
        assert response.json()["message"] == "Chatbot is not published"
        assert await count(session_factory, Conversation) == 0
        assert llm.calls == []

    async def test_unknown_chatbot(self, client, seed, llm):
        response = await client.post(
            "/api/chat",
            json={"message": "Hi", "user_id": ALICE_ID, "chatbot_id": str(uuid.uuid4())},
        )
        assert response.status_code == status.HTTP_404_NOT_FOUND
        assert response.json()["message"] == "Chatbot not found"
        assert llm.calls == []


class TestValidation:
    """Request body checks"""

    async def test_empty_message(self, client, seed):
        response = await client.post("/api/chat", json={"message": "   ", "user_id": ALICE_ID})
        assert response.status_code == status.HTTP_400_BAD_REQUEST
        assert response.json() == {
            "code": "VALIDATION_ERROR",
            "message": "Message is required and must be a non-empty string",
        }

    async def test_missing_message(self, client, seed):
        response = await client.post("/api/chat", json={"user_id": ALICE_ID})
        assert response.status_code == status.HTTP_400_BAD_REQUEST

    async def test_temperature_out_of_range(self, client, seed):
        response = await client.post(
            "/api/chat", json={"message": "Hi", "user_id": ALICE_ID, "temperature": 3}
        )
        body = response.json()
        assert response.status_code == status.HTTP_400_BAD_REQUEST
        assert body["code"] == "VALIDATION_ERROR"
        assert body["details"]["errors"][0]["loc"] == ["body", "temperature"]

    async def test_max_tokens_must_be_positive(self, client, seed):
        response = await client.post(
            "/api/chat", json={"message": "Hi", "user_id": ALICE_ID, "max_tokens": 0}
        )
        assert response.status_code == status.HTTP_400_BAD_REQUEST


class TestFailures:
    """Provider and persistence failures"""

    async def test_provider_failure_is_502_json(self, client, seed, session_factory, llm):
        llm.fail_on_open = RuntimeError("rate limited")

        response = await client.post("/api/chat", json={"message": "Hi", "user_id": ALICE_ID})

        assert response.status_code == status.HTTP_502_BAD_GATEWAY
        body = response.json()
        assert body["code"] == "OPENAI_ERROR"
        assert body["message"] == "Error communicating with AI service"
        # The user message was committed before the provider call
        assert await count(session_factory, Message, Message.role == "user") == 1
        assert await count(session_factory, Message, Message.role == "assistant") == 0

    async def test_metadata_failure_keeps_assistant_message(
        self, client, seed, session_factory, monkeypatch
    ):
        async def broken_record_turn(*args, **kwargs):
            raise RuntimeError("database went away")

        monkeypatch.setattr(ConversationService, "record_turn", broken_record_turn)

        response = await client.post("/api/chat", json={"message": "Hi", "user_id": ALICE_ID})

        assert response.status_code == status.HTTP_200_OK
        assert response.text == "Hello from the assistant."
        conversation_id = response.headers["x-conversation-id"]
        stored = await messages_of(session_factory, conversation_id)
        assert [m.role for m in stored] == ["user", "assistant"]
        assert stored[1].content == "Hello from the assistant."
        # Usage is recorded independently of the failed aggregate update
        assert await count(session_factory, UsageMetric) == 1

    async def test_usage_failure_keeps_message_and_aggregates(
        self, client, seed, session_factory, monkeypatch
    ):
        async def broken_record_usage(*args, **kwargs):
            raise RuntimeError("usage table locked")

        monkeypatch.setattr(UsageService, "record_usage", broken_record_usage)

        response = await client.post("/api/chat", json={"message": "Hi", "user_id": ALICE_ID})

        assert response.status_code == status.HTTP_200_OK
        conversation = await get_conversation(session_factory, response.headers["x-conversation-id"])
        assert conversation.message_count == 2
        assert conversation.total_tokens == 16
        assert await count(session_factory, Message, Message.role == "assistant") == 1
        assert await count(session_factory, UsageMetric) == 0

    async def test_provider_error_mid_stream_truncates(self, client, seed, session_factory, llm):
        llm.fail_after = 1

        response = await client.post("/api/chat", json={"message": "Hi", "user_id": ALICE_ID})

        assert response.status_code == status.HTTP_200_OK
        assert response.text == "Hello"
        conversation = await get_conversation(session_factory, response.headers["x-conversation-id"])
        assert conversation.message_count == 0
        stored = await messages_of(session_factory, conversation.id)
        assert [m.role for m in stored] == ["user"]
        assert await count(session_factory, UsageMetric) == 0

    async def test_client_disconnect_skips_persistence(
        self, seed, session_factory, llm, monkeypatch
    ):
        finalized = []

        async def recording_finalize(*args, **kwargs):
            finalized.append(args)

        monkeypatch.setattr(ChatService, "finalize_turn", recording_finalize)

        async with session_factory() as db:
            turn = await ChatService.start_turn(
                db, session_factory, llm, ChatRequest(message="Hi", user_id=ALICE_ID)
            )

        assert await turn.tokens.__anext__() == "Hello"
        await turn.tokens.aclose()

        assert finalized == []
        stored = await messages_of(session_factory, turn.conversation_id)
        assert [m.role for m in stored] == ["user"]

    async def test_usage_recorded(self, client, seed, session_factory):
        await client.post("/api/chat", json={"message": "Hi", "user_id": ALICE_ID})
        await client.post("/api/chat", json={"message": "Again", "user_id": ALICE_ID})

        async with session_factory() as session:
            row = (await session.execute(select(UsageMetric))).scalar_one()
        assert row.tenant_id == ACME_ID
        assert row.user_id == ALICE_ID
        assert row.request_count == 2
        assert row.prompt_tokens == 24
        assert row.completion_tokens == 8
        assert row.total_tokens == 32


class TestDescribe:
    """GET /api/chat"""

    async def test_contract_document(self, client):
        response = await client.get("/api/chat")

        assert response.status_code == status.HTTP_200_OK
        body = response.json()
        assert body["name"] == "Chat API"
        assert "X-Conversation-ID" in body["response_headers"]
        assert body["extended_parameters"]["reasoning_models"] == settings.REASONING_MODELS
