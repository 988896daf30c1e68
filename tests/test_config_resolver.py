import asyncio
import time

import pytest

from apps.ai.config_resolver import ConfigResolver
from apps.ai.types import GLOBAL_SCOPE_KEY

from conftest import QUEUE_ID, TENANT_ID, FakeConfigStore


@pytest.mark.asyncio
async def test_queue_config_wins_over_global(config_store):
    config_store.add(TENANT_ID, None, model="global-model", default_mode="COPILOTO")
    config_store.add(TENANT_ID, QUEUE_ID, model="queue-model", default_mode="IA_AUTO")

    config = await ConfigResolver(config_store).resolve(TENANT_ID, QUEUE_ID)

    assert config.model == "queue-model"
    assert config.default_mode == "IA_AUTO"
    assert config.scope_key == QUEUE_ID
    assert config.persisted is True


@pytest.mark.asyncio
async def test_queue_miss_falls_back_to_global_before_default(config_store):
    config_store.add(TENANT_ID, None, model="global-model", default_mode="HUMANO", temperature=0.5)

    config = await ConfigResolver(config_store).resolve(TENANT_ID, QUEUE_ID)

    assert config.model == "global-model"
    assert config.default_mode == "HUMANO"
    assert config.temperature == 0.5
    assert config.scope_key == GLOBAL_SCOPE_KEY
    assert config_store.reads == [(TENANT_ID, QUEUE_ID), (TENANT_ID, None)]
    assert config_store.upserts == []


@pytest.mark.asyncio
async def test_missing_config_is_synthesized_and_persisted_globally(config_store, settings):
    settings.AI_DEFAULT_MODEL = "gpt-4.1-mini"
    settings.AI_DEFAULT_MODE = "IA_AUTO"

    config = await ConfigResolver(config_store).resolve(TENANT_ID, QUEUE_ID)
    await asyncio.sleep(0)

    assert config.model == "gpt-4.1-mini"
    assert config.default_mode == "IA_AUTO"
    assert config.config_id is None
    assert config.persisted is False
    assert config_store.upserts == [{
        "tenant_id": TENANT_ID,
        "queue_id": None,
        "scope_key": GLOBAL_SCOPE_KEY,
        "model": "gpt-4.1-mini",
        "default_mode": "IA_AUTO",
    }]


@pytest.mark.asyncio
async def test_failed_upsert_of_default_is_tolerated():
    store = FakeConfigStore(fail_writes=True)
    resolver = ConfigResolver(store)

    config = await resolver.resolve(TENANT_ID, None)
    await resolver.wait_pending_writes()

    assert config.default_mode == "COPILOTO"
    assert len(store.upserts) == 1


class SlowWriteStore(FakeConfigStore):
    async def upsert_config(self, tenant_id, queue_id=None, **fields):
        await asyncio.sleep(5)
        return await super().upsert_config(tenant_id, queue_id, **fields)


@pytest.mark.asyncio
async def test_synthesized_default_does_not_wait_for_the_write():
    store = SlowWriteStore()
    resolver = ConfigResolver(store)

    started = time.monotonic()
    config = await resolver.resolve(TENANT_ID, QUEUE_ID)
    elapsed = time.monotonic() - started

    assert elapsed < 1
    assert config.default_mode == "COPILOTO"
    assert store.upserts == []

    pending = list(resolver._pending_writes)
    assert len(pending) == 1
    pending[0].cancel()
    await resolver.wait_pending_writes()
    assert resolver._pending_writes == set()


@pytest.mark.asyncio
async def test_pending_write_lands_after_yielding(config_store):
    resolver = ConfigResolver(config_store)

    await resolver.resolve(TENANT_ID, None)
    await resolver.wait_pending_writes()

    assert config_store.records[(TENANT_ID, GLOBAL_SCOPE_KEY)]["default_mode"] == "COPILOTO"


@pytest.mark.asyncio
async def test_read_failure_yields_synthesized_default():
    store = FakeConfigStore(fail_reads=True)

    config = await ConfigResolver(store).resolve(TENANT_ID, QUEUE_ID)

    assert config.persisted is False
    assert config.model == "gpt-4o-mini"
    assert config.default_mode == "COPILOTO"


@pytest.mark.asyncio
async def test_record_without_mode_is_backfilled(config_store):
    record = config_store.add(TENANT_ID, None, model="gpt-4o", default_mode=None)

    config = await ConfigResolver(config_store).resolve(TENANT_ID, None)
    await asyncio.sleep(0)

    assert config.default_mode == "COPILOTO"
    assert config.config_id == record["id"]
    assert config_store.upserts[-1]["default_mode"] == "COPILOTO"
    assert config_store.upserts[-1]["scope_key"] == GLOBAL_SCOPE_KEY
    assert config_store.records[(TENANT_ID, GLOBAL_SCOPE_KEY)]["default_mode"] == "COPILOTO"


@pytest.mark.asyncio
async def test_record_without_scope_key_is_backfilled(config_store):
    config_store.add(TENANT_ID, QUEUE_ID, model="gpt-4o", default_mode="IA_AUTO", scope_key=None)

    config = await ConfigResolver(config_store).resolve(TENANT_ID, QUEUE_ID)
    await asyncio.sleep(0)

    assert config.scope_key == QUEUE_ID
    assert config_store.upserts[-1]["scope_key"] == QUEUE_ID
    assert config_store.upserts[-1]["default_mode"] == "IA_AUTO"


@pytest.mark.asyncio
async def test_invalid_environment_mode_falls_back_to_copilot(config_store, settings):
    settings.AI_DEFAULT_MODE = "TURBO"

    mode = await ConfigResolver(config_store).resolve_mode(TENANT_ID, None)

    assert mode == "COPILOTO"


@pytest.mark.asyncio
async def test_resolved_config_carries_record_fields(config_store):
    config_store.add(
        TENANT_ID,
        None,
        model="gpt-4o",
        default_mode="ia_auto",
        system_prompt_reply="Seja cordial.",
        tools=[{"type": "function", "function": {"name": "crm_lookup"}}],
        vector_store_enabled=True,
        vector_store_ids=["vs_1"],
        streaming_enabled=False,
    )

    config = await ConfigResolver(config_store).resolve(TENANT_ID, None)

    assert config.default_mode == "IA_AUTO"
    assert config.system_prompt_reply == "Seja cordial."
    assert config.tools[0]["function"]["name"] == "crm_lookup"
    assert config.vector_store_ids == ["vs_1"]
    assert config.streaming_enabled is False
