import asyncio

import httpx
import pytest

from apps.ai.auto_reply import AutoReplyGuard
from apps.ai.reply_service import ReplyService
from apps.ai.tool_registry import ToolRegistry
from apps.ai.types import HistoryMessage, InboundMessageEvent

from conftest import (
    TENANT_ID,
    FakeHistoryReader,
    FakeSender,
    ProviderRecorder,
    completed,
    make_provider,
    sse_response,
    text_delta,
)

TICKET_ID = "33333333-3333-3333-3333-333333333333"


def inbound(content="Quero saber o preço", message_id="m3", direction="incoming"):
    return InboundMessageEvent(
        tenant_id=TENANT_ID,
        ticket_id=TICKET_ID,
        message_id=message_id,
        content=content,
        contact_id="+5511999990000",
        direction=direction,
    )


def default_history():
    # mais recentes primeiro
    return [
        HistoryMessage(direction="incoming", content="Quero saber o preço", message_id="m3"),
        HistoryMessage(direction="outgoing", content="Olá! Como posso ajudar?", message_id="m2"),
        HistoryMessage(direction="incoming", content="Oi", message_id="m1"),
    ]


def reply_handler():
    usage = {"input_tokens": 30, "output_tokens": 6, "total_tokens": 36}
    return ProviderRecorder(lambda: sse_response(
        text_delta("Custa R$ 49,90."),
        completed("gpt-4o-mini-2024", usage),
    ))


def make_guard(config_store, run_store, handler, history=None, sender=None, **kwargs):
    service = ReplyService(config_store, run_store, registry=ToolRegistry(), provider=make_provider(handler))
    return AutoReplyGuard(
        service,
        history if history is not None else FakeHistoryReader(default_history()),
        sender if sender is not None else FakeSender(),
        **kwargs,
    )


@pytest.fixture
def auto_config(config_store):
    config_store.add(TENANT_ID, None, model="gpt-4o-mini", default_mode="IA_AUTO")
    return config_store


@pytest.mark.asyncio
async def test_sends_reply_with_traceable_metadata(auto_config, run_store):
    recorder = reply_handler()
    sender = FakeSender()
    guard = make_guard(auto_config, run_store, recorder, sender=sender)

    outcome = await guard.process(inbound())

    assert outcome.label == "sent"
    assert outcome.sent_message_id == "out-1"
    assert len(sender.sent) == 1
    sent = sender.sent[0]
    assert sent["content"] == "Custa R$ 49,90."
    assert sent["contact_id"] == "+5511999990000"
    assert sent["metadata"] == {
        "ai_generated": True,
        "ai_model": "gpt-4o-mini-2024",
        "ai_mode": "IA_AUTO",
        "triggered_by_message_id": "m3",
        "usage": {"input_tokens": 30, "output_tokens": 6, "total_tokens": 36},
    }
    request = recorder.requests[0]
    assert [(item["role"], item["content"][0]["text"]) for item in request["input"]] == [
        ("user", "Oi"),
        ("assistant", "Olá! Como posso ajudar?"),
        ("user", "Quero saber o preço"),
    ]
    assert request["metadata"]["autoReply"] == "true"
    assert request["metadata"]["triggeredByMessageId"] == "m3"


@pytest.mark.asyncio
async def test_already_replied_message_is_skipped(auto_config, run_store):
    recorder = reply_handler()
    sender = FakeSender()
    history = FakeHistoryReader(default_history(), replied={"m3"})
    guard = make_guard(auto_config, run_store, recorder, history=history, sender=sender)

    outcome = await guard.process(inbound())

    assert outcome.label == "skipped:already_replied"
    assert recorder.requests == []
    assert sender.sent == []
    assert run_store.runs == []


class RecordingSender(FakeSender):
    """Marca a mensagem de origem como respondida, como a mensagem salva faria."""

    def __init__(self, history: FakeHistoryReader):
        super().__init__()
        self.history = history

    async def send(self, tenant_id, ticket_id, contact_id, content, metadata):
        sent = await super().send(tenant_id, ticket_id, contact_id, content, metadata)
        self.history.replied.add(metadata["triggered_by_message_id"])
        return sent


@pytest.mark.asyncio
async def test_same_inbound_message_is_answered_once(auto_config, run_store):
    recorder = reply_handler()
    history = FakeHistoryReader(default_history())
    sender = RecordingSender(history)
    guard = make_guard(auto_config, run_store, recorder, history=history, sender=sender)

    first = await guard.process(inbound())
    second = await guard.process(inbound())

    assert first.label == "sent"
    assert second.label == "skipped:already_replied"
    assert len(sender.sent) == 1
    assert len(recorder.requests) == 1


@pytest.mark.asyncio
async def test_generation_timeout_sends_nothing(auto_config, run_store):
    async def slow(request):
        await asyncio.sleep(5)
        return sse_response(text_delta("tarde demais"))

    sender = FakeSender()
    guard = make_guard(auto_config, run_store, slow, sender=sender, timeout=0.05)

    outcome = await guard.process(inbound())

    assert outcome.status == "timeout"
    assert sender.sent == []
    assert all(run["status"] != "success" for run in run_store.runs)


@pytest.mark.asyncio
async def test_lookup_failure_counts_as_not_replied(auto_config, run_store):
    history = FakeHistoryReader(default_history(), fail_lookup=True)
    guard = make_guard(auto_config, run_store, reply_handler(), history=history)

    outcome = await guard.process(inbound())

    assert outcome.label == "sent"


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "content, direction, overrides, reason",
    [
        ("   ", "incoming", {}, "empty_content"),
        ("Oi", "incoming", {"AI_AUTO_REPLY_ENABLED": False}, "auto_reply_disabled"),
        ("Oi", "incoming", {"OPENAI_API_KEY": ""}, "ai_disabled"),
        ("Oi", "outgoing", {}, "outbound_message"),
    ],
)
async def test_cheap_preconditions_skip_before_any_lookup(
    auto_config, run_store, settings, content, direction, overrides, reason
):
    for name, value in overrides.items():
        setattr(settings, name, value)
    recorder = reply_handler()
    history = FakeHistoryReader(default_history())
    guard = make_guard(auto_config, run_store, recorder, history=history)

    outcome = await guard.process(inbound(content=content, direction=direction))

    assert outcome.label == f"skipped:{reason}"
    assert history.limits == []
    assert recorder.requests == []


@pytest.mark.asyncio
@pytest.mark.parametrize("mode, reason", [("COPILOTO", "mode_copiloto"), ("HUMANO", "mode_humano")])
async def test_non_auto_modes_are_skipped(config_store, run_store, mode, reason):
    config_store.add(TENANT_ID, None, model="gpt-4o-mini", default_mode=mode)
    recorder = reply_handler()
    guard = make_guard(config_store, run_store, recorder)

    outcome = await guard.process(inbound())

    assert outcome.label == f"skipped:{reason}"
    assert recorder.requests == []


@pytest.mark.asyncio
async def test_force_auto_reply_overrides_mode(config_store, run_store, settings):
    settings.AI_FORCE_AUTO_REPLY = True
    config_store.add(TENANT_ID, None, model="gpt-4o-mini", default_mode="HUMANO")
    guard = make_guard(config_store, run_store, reply_handler())

    outcome = await guard.process(inbound())

    assert outcome.label == "sent"


@pytest.mark.asyncio
async def test_send_failure_is_reported_without_retry(auto_config, run_store):
    sender = FakeSender(fail=True)
    recorder = reply_handler()
    guard = make_guard(auto_config, run_store, recorder, sender=sender)

    outcome = await guard.process(inbound())

    assert outcome.label == "failed:send_error"
    assert len(recorder.requests) == 1


@pytest.mark.asyncio
async def test_provider_error_is_not_sent(auto_config, run_store):
    sender = FakeSender()
    guard = make_guard(auto_config, run_store, lambda request: httpx.Response(503, text="down"), sender=sender)

    outcome = await guard.process(inbound())

    assert outcome.label == "not_sent:error"
    assert sender.sent == []


@pytest.mark.asyncio
async def test_trigger_is_appended_when_missing_from_history(auto_config, run_store):
    recorder = reply_handler()
    history = FakeHistoryReader([HistoryMessage(direction="incoming", content="Oi", message_id="m1")])
    guard = make_guard(auto_config, run_store, recorder, history=history)

    await guard.process(inbound(content="E o frete?", message_id="m9"))

    texts = [item["content"][0]["text"] for item in recorder.requests[0]["input"]]
    assert texts == ["Oi", "E o frete?"]


@pytest.mark.asyncio
async def test_window_is_capped_in_size_and_content(auto_config, run_store, settings):
    settings.AI_AUTO_REPLY_HISTORY_LIMIT = 50
    recorder = reply_handler()
    messages = [
        HistoryMessage(direction="incoming", content=f"mensagem {index} " + "x" * 50, message_id=f"h{index}")
        for index in range(20)
    ]
    history = FakeHistoryReader(messages)
    guard = make_guard(auto_config, run_store, recorder, history=history, max_chars=20)

    await guard.process(inbound(content="mensagem 0", message_id="h0"))

    assert history.limits == [12]
    items = recorder.requests[0]["input"]
    assert len(items) == 12
    assert all(len(item["content"][0]["text"]) <= 20 for item in items)
    assert items[-1]["content"][0]["text"].startswith("mensagem 0")
