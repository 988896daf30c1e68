import json
import uuid

import httpx
import pytest
from django.core.cache import cache
from django.urls import reverse
from rest_framework.test import APIClient

from apps.ai.reply_service import ReplyService
from apps.ai.tool_registry import ToolRegistry
from apps.authn.models import Department, User
from apps.tenancy.models import Tenant

from conftest import FakeConfigStore, FakeRunStore, make_provider

pytestmark = pytest.mark.django_db


@pytest.fixture
def tenant():
    return Tenant.objects.create(name="Loja Centro")


@pytest.fixture
def department(tenant):
    return Department.objects.create(tenant=tenant, name="Vendas")


@pytest.fixture
def admin_user(tenant):
    return User.objects.create_user(
        username="admin", email="admin@loja.test", password="senha-forte-123", tenant=tenant, role="admin"
    )


@pytest.fixture
def agent_user(tenant):
    return User.objects.create_user(
        username="agente", email="agente@loja.test", password="senha-forte-123", tenant=tenant, role="agente"
    )


def client_for(user):
    client = APIClient()
    client.force_authenticate(user=user)
    return client


def parse_sse(body: bytes):
    events = []
    for frame in body.decode("utf-8").split("\n\n"):
        if not frame.strip():
            continue
        lines = dict(line.split(": ", 1) for line in frame.split("\n"))
        events.append((lines["event"], json.loads(lines["data"])))
    return events


class TestConfigEndpoint:
    def test_get_without_saved_config_returns_defaults(self, admin_user, tenant):
        response = client_for(admin_user).get(reverse("ai-config"))

        assert response.status_code == 200
        data = response.json()
        assert data["id"] is None
        assert data["tenantId"] == str(tenant.id)
        assert data["scopeKey"] == "__global__"
        assert data["model"] == "gpt-4o-mini"
        assert data["temperature"] == 0.3
        assert data["defaultMode"] == "COPILOTO"
        assert data["streamingEnabled"] is True
        assert data["aiEnabled"] is True
        assert data["structuredOutputSchema"]["type"] == "object"

    def test_put_global_then_queue_falls_back_to_global(self, admin_user, department):
        client = client_for(admin_user)

        response = client.put(
            reverse("ai-config"),
            {"model": "gpt-4o", "temperature": 0.7, "defaultMode": "IA_AUTO", "systemPromptReply": "Seja breve."},
            format="json",
        )

        assert response.status_code == 200
        assert response.json()["defaultMode"] == "IA_AUTO"

        fallback = client.get(reverse("ai-config"), {"queueId": str(department.id)}).json()
        assert fallback["scopeKey"] == "__global__"
        assert fallback["model"] == "gpt-4o"
        assert fallback["systemPromptReply"] == "Seja breve."

    def test_put_queue_scope_does_not_inherit_global(self, admin_user, department):
        client = client_for(admin_user)
        client.put(reverse("ai-config"), {"model": "gpt-4o", "temperature": 0.7}, format="json")

        response = client.put(
            reverse("ai-config"),
            {"queueId": str(department.id), "defaultMode": "HUMANO"},
            format="json",
        )

        data = response.json()
        assert data["scopeKey"] == str(department.id)
        assert data["queueId"] == str(department.id)
        assert data["model"] == "gpt-4o-mini"
        assert data["temperature"] is None
        assert data["defaultMode"] == "HUMANO"

    def test_put_requires_admin(self, agent_user):
        response = client_for(agent_user).put(reverse("ai-config"), {"model": "gpt-4o"}, format="json")

        assert response.status_code == 403

    def test_put_rejects_invalid_payload(self, admin_user):
        response = client_for(admin_user).put(
            reverse("ai-config"),
            {"defaultMode": "ROBO", "structuredOutputSchema": ["nao", "objeto"]},
            format="json",
        )

        assert response.status_code == 400
        assert set(response.json()["detail"]) == {"defaultMode", "structuredOutputSchema"}

    def test_foreign_queue_is_not_found(self, admin_user):
        other = Department.objects.create(tenant=Tenant.objects.create(name="Outra"), name="Suporte")

        response = client_for(admin_user).get(reverse("ai-config"), {"queueId": str(other.id)})

        assert response.status_code == 404

    def test_invalid_queue_id_is_bad_request(self, admin_user):
        response = client_for(admin_user).get(reverse("ai-config"), {"queueId": "fila-1"})

        assert response.status_code == 400

    def test_agent_without_queue_access_is_forbidden(self, agent_user, department):
        response = client_for(agent_user).get(reverse("ai-config"), {"queueId": str(department.id)})

        assert response.status_code == 403

    def test_anonymous_is_rejected(self):
        response = APIClient().get(reverse("ai-config"))

        assert response.status_code in (401, 403)


class TestModeEndpoint:
    def test_get_and_update_mode(self, agent_user, department):
        agent_user.departments.add(department)
        client = client_for(agent_user)

        assert client.get(reverse("ai-mode")).json() == {"mode": "COPILOTO", "aiEnabled": True}

        response = client.post(
            reverse("ai-mode"), {"queueId": str(department.id), "mode": "IA_AUTO"}, format="json"
        )

        assert response.status_code == 200
        assert response.json() == {"mode": "IA_AUTO"}
        assert client.get(reverse("ai-mode"), {"queueId": str(department.id)}).json()["mode"] == "IA_AUTO"
        assert client.get(reverse("ai-mode")).json()["mode"] == "COPILOTO"

    def test_invalid_mode_is_rejected(self, admin_user):
        response = client_for(admin_user).post(reverse("ai-mode"), {"mode": "AUTO"}, format="json")

        assert response.status_code == 400


class TestReplyEndpoint:
    @pytest.fixture
    def service(self, monkeypatch):
        service = ReplyService(FakeConfigStore(), FakeRunStore(), registry=ToolRegistry())
        monkeypatch.setattr("apps.ai.views.build_reply_service", lambda: service)
        return service

    def test_streams_stub_reply_when_ai_disabled(self, admin_user, service, settings):
        settings.OPENAI_API_KEY = ""
        payload = {
            "conversationId": str(uuid.uuid4()),
            "messages": [{"role": "user", "content": "Oi"}],
        }

        response = client_for(admin_user).post(reverse("ai-reply"), payload, format="json")

        assert response.status_code == 200
        assert response["Content-Type"].startswith("text/event-stream")
        assert response["Cache-Control"] == "no-cache"
        events = parse_sse(b"".join(response.streaming_content))
        assert [kind for kind, _ in events] == ["delta", "delta", "delta", "done"]
        done = events[-1][1]
        assert done["message"] == "".join(data["delta"] for _, data in events[:-1])
        assert done["status"] == "stubbed"
        assert service.run_store.runs[0]["status"] == "stubbed"

    def test_provider_failure_is_streamed_as_error_event(self, admin_user, service):
        service.provider = make_provider(lambda request: httpx.Response(500, text="boom"))
        payload = {"conversationId": "conv-1", "messages": [{"role": "user", "content": "Oi"}]}

        response = client_for(admin_user).post(reverse("ai-reply"), payload, format="json")

        assert response.status_code == 200
        events = parse_sse(b"".join(response.streaming_content))
        assert [kind for kind, _ in events] == ["error"]

    def test_empty_messages_are_rejected(self, admin_user, service):
        response = client_for(admin_user).post(
            reverse("ai-reply"), {"conversationId": "conv-1", "messages": []}, format="json"
        )

        assert response.status_code == 400


class TestSuggestEndpoint:
    def test_provider_failure_maps_to_bad_gateway(self, admin_user, monkeypatch):
        service = ReplyService(
            FakeConfigStore(),
            FakeRunStore(),
            registry=ToolRegistry(),
            provider=make_provider(lambda request: httpx.Response(500, text="upstream down")),
        )
        monkeypatch.setattr("apps.ai.views.build_reply_service", lambda: service)

        response = client_for(admin_user).post(
            reverse("ai-suggest"),
            {"conversationId": "conv-1", "goal": "Fechar a venda", "messages": [{"role": "user", "content": "Oi"}]},
            format="json",
        )

        assert response.status_code == 502
        assert str(response.json()["detail"]["provider_status"]) == "500"

    def test_stub_suggestion_when_ai_disabled(self, admin_user, monkeypatch, settings):
        settings.OPENAI_API_KEY = ""
        service = ReplyService(FakeConfigStore(), FakeRunStore(), registry=ToolRegistry())
        monkeypatch.setattr("apps.ai.views.build_reply_service", lambda: service)

        response = client_for(admin_user).post(reverse("ai-suggest"), {"conversationId": "conv-1"}, format="json")

        assert response.status_code == 200
        data = response.json()
        assert data["status"] == "stubbed"
        assert data["confidence"] == 0

    def test_suggest_over_rate_is_throttled(self, admin_user, monkeypatch, settings):
        cache.clear()
        settings.OPENAI_API_KEY = ""
        settings.AI_SUGGEST_RATE_PER_MINUTE = 1
        service = ReplyService(FakeConfigStore(), FakeRunStore(), registry=ToolRegistry())
        monkeypatch.setattr("apps.ai.views.build_reply_service", lambda: service)
        client = client_for(admin_user)

        first = client.post(reverse("ai-suggest"), {"conversationId": "conv-1"}, format="json")
        second = client.post(reverse("ai-suggest"), {"conversationId": "conv-1"}, format="json")

        assert first.status_code == 200
        assert second.status_code == 429
        cache.clear()
