"""
Ponte entre o pipeline assíncrono e a resposta `text/event-stream`.

O pipeline roda num event loop próprio em thread daemon (mesmo formato do
worker de auto-reply); a view consome os eventos por uma fila síncrona.
"""

import asyncio
import json
import logging
import queue
import threading
from typing import Awaitable, Callable, Iterator

from django.db import close_old_connections

from apps.ai.types import Emitter, StreamEvent

logger = logging.getLogger(__name__)

_END = object()

Pipeline = Callable[[Emitter, asyncio.Event], Awaitable[object]]


def format_sse(event: StreamEvent) -> bytes:
    payload = json.dumps(event.data, ensure_ascii=False, default=str)
    return f"event: {event.kind}\ndata: {payload}\n\n".encode("utf-8")


def stream_events(pipeline: Pipeline) -> Iterator[bytes]:
    """
    Executa `pipeline(emit, abort_event)` e gera os frames SSE na ordem de emissão.

    Se o cliente desconectar (gerador fechado antes do fim), o `abort_event`
    do pipeline é sinalizado.
    """
    events: "queue.Queue" = queue.Queue()
    state = {}
    started = threading.Event()

    async def runner():
        state["loop"] = asyncio.get_running_loop()
        state["abort"] = asyncio.Event()
        started.set()
        try:
            await pipeline(events.put, state["abort"])
        except Exception as exc:
            logger.exception("[AI SSE] Pipeline falhou: %s", exc)
            events.put(StreamEvent.error(str(exc) or exc.__class__.__name__))

    def worker():
        close_old_connections()
        try:
            asyncio.run(runner())
        finally:
            close_old_connections()
            started.set()
            events.put(_END)

    thread = threading.Thread(target=worker, daemon=True)
    thread.start()

    try:
        while True:
            event = events.get()
            if event is _END:
                break
            yield format_sse(event)
    finally:
        if thread.is_alive():
            started.wait(timeout=1)
            loop, abort = state.get("loop"), state.get("abort")
            if loop is not None and abort is not None:
                logger.info("[AI SSE] Cliente desconectou, abortando stream")
                try:
                    loop.call_soon_threadsafe(abort.set)
                except RuntimeError:
                    logger.debug("[AI SSE] Loop já encerrado")
