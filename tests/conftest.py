"""Shared pytest fixtures and in-memory fakes for the AI pipeline."""

import json
from typing import Any, Dict, List, Optional

import httpx
import pytest

from apps.ai.provider import ResponsesClient
from apps.ai.types import GLOBAL_SCOPE_KEY, HistoryMessage

TENANT_ID = "11111111-1111-1111-1111-111111111111"
QUEUE_ID = "22222222-2222-2222-2222-222222222222"
PROVIDER_URL = "https://provider.test/v1/responses"


def scope_key_for(queue_id):
    return str(queue_id) if queue_id else GLOBAL_SCOPE_KEY


class FakeConfigStore:
    def __init__(self, fail_reads: bool = False, fail_writes: bool = False):
        self.records: Dict[tuple, Dict[str, Any]] = {}
        self.upserts: List[Dict[str, Any]] = []
        self.reads: List[tuple] = []
        self.fail_reads = fail_reads
        self.fail_writes = fail_writes

    def add(self, tenant_id: str, queue_id: Optional[str] = None, **fields) -> Dict[str, Any]:
        key = (str(tenant_id), scope_key_for(queue_id))
        record = {
            "id": str(len(self.records) + 1),
            "tenant_id": str(tenant_id),
            "queue_id": queue_id,
            "scope_key": scope_key_for(queue_id),
        }
        record.update(fields)
        self.records[key] = record
        return record

    async def get_config(self, tenant_id, queue_id=None):
        self.reads.append((str(tenant_id), queue_id))
        if self.fail_reads:
            raise RuntimeError("database unavailable")
        record = self.records.get((str(tenant_id), scope_key_for(queue_id)))
        return dict(record) if record else None

    async def upsert_config(self, tenant_id, queue_id=None, **fields):
        self.upserts.append({"tenant_id": str(tenant_id), "queue_id": queue_id, **fields})
        if self.fail_writes:
            raise RuntimeError("database is read-only")
        scope_key = fields.pop("scope_key", None) or scope_key_for(queue_id)
        key = (str(tenant_id), scope_key)
        record = dict(self.records.get(key) or {"id": str(len(self.records) + 1)})
        record.update(fields)
        record.update(tenant_id=str(tenant_id), queue_id=queue_id, scope_key=scope_key)
        self.records[key] = record
        return dict(record)


class FakeRunStore:
    def __init__(self, fail: bool = False):
        self.runs: List[Dict[str, Any]] = []
        self.fail = fail

    async def record_run(self, **fields):
        if self.fail:
            raise RuntimeError("ai_run table missing")
        self.runs.append(fields)
        return len(self.runs)

    def of_type(self, run_type: str) -> List[Dict[str, Any]]:
        return [run for run in self.runs if run["run_type"] == run_type]


class FakeHistoryReader:
    def __init__(self, messages=None, replied=None, fail_lookup: bool = False):
        # mais recentes primeiro, como o leitor real
        self.messages: List[HistoryMessage] = list(messages or [])
        self.replied = set(replied or [])
        self.fail_lookup = fail_lookup
        self.limits: List[int] = []

    async def recent_messages(self, tenant_id, ticket_id, limit):
        self.limits.append(limit)
        return self.messages[:limit]

    async def has_reply_for(self, tenant_id, ticket_id, message_id):
        if self.fail_lookup:
            raise RuntimeError("lookup failed")
        return message_id in self.replied


class FakeSender:
    def __init__(self, fail: bool = False):
        self.sent: List[Dict[str, Any]] = []
        self.fail = fail

    async def send(self, tenant_id, ticket_id, contact_id, content, metadata):
        if self.fail:
            raise RuntimeError("whatsapp instance offline")
        self.sent.append({
            "tenant_id": tenant_id,
            "ticket_id": ticket_id,
            "contact_id": contact_id,
            "content": content,
            "metadata": metadata,
        })
        return f"out-{len(self.sent)}"


class EventCollector:
    def __init__(self):
        self.events = []

    def __call__(self, event):
        self.events.append(event)

    def kinds(self) -> List[str]:
        return [event.kind for event in self.events]

    def of_kind(self, kind: str):
        return [event.data for event in self.events if event.kind == kind]


def sse_body(*events: Dict[str, Any], done: bool = True) -> bytes:
    frames = [f"data: {json.dumps(event)}\n\n" for event in events]
    if done:
        frames.append("data: [DONE]\n\n")
    return "".join(frames).encode("utf-8")


def text_delta(text: str) -> Dict[str, Any]:
    return {"type": "response.output_text.delta", "delta": text}


def completed(model: str = "gpt-4o-mini", usage: Optional[Dict[str, Any]] = None, output=None) -> Dict[str, Any]:
    response: Dict[str, Any] = {"model": model, "usage": usage}
    if output is not None:
        response["output"] = output
    return {"type": "response.completed", "response": response}


class ProviderRecorder:
    """Handler para `httpx.MockTransport` que guarda os corpos enviados."""

    def __init__(self, build_response):
        self.build_response = build_response
        self.requests: List[Dict[str, Any]] = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(json.loads(request.content))
        return self.build_response()


def sse_response(*events: Dict[str, Any], done: bool = True) -> httpx.Response:
    return httpx.Response(
        200,
        content=sse_body(*events, done=done),
        headers={"content-type": "text/event-stream"},
    )


def make_provider(handler) -> ResponsesClient:
    return ResponsesClient(
        api_key="test-key",
        url=PROVIDER_URL,
        timeout=5,
        transport=httpx.MockTransport(handler),
    )


@pytest.fixture(autouse=True)
def ai_settings(settings):
    settings.OPENAI_API_KEY = "test-key"
    settings.AI_RESPONSES_API_URL = PROVIDER_URL
    settings.AI_DEFAULT_MODEL = "gpt-4o-mini"
    settings.AI_DEFAULT_MODE = "COPILOTO"
    settings.AI_AUTO_REPLY_ENABLED = True
    settings.AI_FORCE_AUTO_REPLY = False
    settings.AI_AUTO_REPLY_TIMEOUT = 5
    settings.AI_AUTO_REPLY_HISTORY_LIMIT = 12
    settings.AI_AUTO_REPLY_MAX_CHARS = 2000
    settings.AI_TOOL_TIMEOUT = 5
    return settings


@pytest.fixture
def config_store():
    return FakeConfigStore()


@pytest.fixture
def run_store():
    return FakeRunStore()


@pytest.fixture
def collector():
    return EventCollector()
