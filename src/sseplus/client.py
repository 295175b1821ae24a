"""EventSource: a reconnecting Server-Sent Events client.

``EventSource`` holds the request configuration. ``subscribe()`` starts an
``EventSourceController``, which runs one attempt at a time:

    build headers → on_request → fetch → on_response → stream messages
                         │                    │
                  on_request_error    on_response_error
                         └──────── retry with backoff ────────┘

Each attempt gets a fresh AbortSignal. ``abort()`` and ``reconnect()``
abort the current signal and cancel the running task; anything an old
attempt does afterwards is dropped.
"""

from __future__ import annotations

import asyncio
import contextlib
import dataclasses
import inspect
from collections.abc import Callable
from typing import Any

import httpx
import structlog

from .cancellation import AbortSignal
from .config import ClientSettings
from .errors import (
    EVENT_STREAM_CONTENT_TYPE,
    ContentTypeError,
    MissingBodyError,
    ResponseError,
)
from .headers import build_request_headers
from .parse import Message, decode_stream, parse_chunk
from .retry import ConnectionState, RetryStrategy
from .state_machine import ConnectionPhase, transition
from .transport import Fetch, HttpxFetch
from .types import (
    AbortEvent,
    AbortEventType,
    ContextHook,
    EventSourceHooks,
    FetchContext,
    FetchRequest,
    FetchResponse,
    HeaderSource,
    MessageHook,
)

log = structlog.get_logger()

AbortListener = Callable[[AbortEvent], Any]


async def _call_hook(hook: Callable[[Any], Any] | None, arg: Any) -> None:
    if hook is None:
        return
    result = hook(arg)
    if inspect.isawaitable(result):
        await result


def _check_response(response: FetchResponse) -> ResponseError | None:
    """Return the error that makes this response unusable, if any."""
    if not response.ok:
        return ResponseError(response.status, response.reason)
    content_type = response.content_type
    if content_type is None or EVENT_STREAM_CONTENT_TYPE not in content_type:
        return ContentTypeError(response.status, response.reason, content_type)
    if response.stream is None:
        return MissingBodyError(response.status, response.reason)
    return None


class EventSource:
    """Request configuration shared by every subscription made from it.

    Keyword ``options`` override fields of ``settings`` (or of a fresh
    ``ClientSettings()``), e.g. ``EventSource(url, method="post",
    max_retry_count=5)``.
    """

    def __init__(
        self,
        url: str,
        *,
        settings: ClientSettings | None = None,
        headers: HeaderSource | None = None,
        body: str | bytes | None = None,
        fetch: Fetch | None = None,
        client: httpx.AsyncClient | None = None,
        **options: Any,
    ) -> None:
        if settings is None:
            settings = ClientSettings(**options)
        elif options:
            settings = ClientSettings(**{**settings.model_dump(), **options})
        self.url = url
        self.settings = settings
        self.headers = headers
        self.body = body
        self._owned_fetch: HttpxFetch | None = None
        if fetch is None:
            fetch = self._owned_fetch = HttpxFetch(client)
        self.fetch: Fetch = fetch

    def subscribe(
        self,
        on_message: MessageHook,
        *,
        on_request: ContextHook | None = None,
        on_request_error: ContextHook | None = None,
        on_response: ContextHook | None = None,
        on_response_error: ContextHook | None = None,
    ) -> EventSourceController:
        """Start listening. Must be called from a running event loop."""
        hooks = EventSourceHooks(
            on_message=on_message,
            on_request=on_request,
            on_request_error=on_request_error,
            on_response=on_response,
            on_response_error=on_response_error,
        )
        state = ConnectionState(
            max_retry_count=self.settings.max_retry_count,
            max_retry_interval_ms=self.settings.max_retry_interval_ms,
            retry_strategy=RetryStrategy(self.settings.retry_strategy),
        )
        controller = EventSourceController(self, hooks, state)
        controller._start(hooks, trigger="subscribe")
        return controller

    async def aclose(self) -> None:
        """Close the default transport, if this EventSource created it."""
        if self._owned_fetch is not None:
            await self._owned_fetch.aclose()

    async def __aenter__(self) -> EventSource:
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.aclose()


class EventSourceController:
    """Handle for one subscription: owns its ConnectionState and attempt task."""

    def __init__(
        self,
        source: EventSource,
        hooks: EventSourceHooks,
        state: ConnectionState,
    ) -> None:
        self._source = source
        self._base_hooks = hooks
        self.state = state
        self.phase = ConnectionPhase.IDLE
        self.did_abort = False

        self._signal = AbortSignal()
        self._task: asyncio.Task[None] | None = None
        self._listeners: list[AbortListener] = []
        self._abort_event: AbortEvent | None = None
        self._closed: asyncio.Future[AbortEvent] | None = None

    @property
    def signal(self) -> AbortSignal:
        """Cancellation signal of the current attempt."""
        return self._signal

    @property
    def abort_event(self) -> AbortEvent | None:
        return self._abort_event

    def abort(self, reason: str | None = None) -> None:
        """Stop for good. Only the first call (per reconnect) has any effect."""
        self._emit_event(AbortEvent(AbortEventType.MANUAL, reason))

    def reconnect(self, **hook_overrides: Any) -> None:
        """Drop the current attempt and start a fresh one right away.

        ``hook_overrides`` replace hooks given to ``subscribe()`` by name,
        until the next reconnect.
        """
        hooks = dataclasses.replace(self._base_hooks, **hook_overrides)
        log.info(
            "reconnect_requested",
            url=self._source.url,
            overrides=sorted(hook_overrides),
            was_aborted=self.did_abort,
        )
        self._signal.abort("reconnect")
        self._cancel_task()
        self.did_abort = False
        self._abort_event = None
        self._signal = AbortSignal()
        self._start(hooks, trigger="reconnect")

    def on_abort_event(self, callback: AbortListener) -> AbortListener:
        """Register a listener for AbortEvents. Usable as a decorator."""
        self._listeners.append(callback)
        return callback

    async def wait_closed(self) -> AbortEvent:
        """Wait until the current subscription emits its AbortEvent."""
        if self._closed is None:
            raise RuntimeError("controller was never started")
        return await asyncio.shield(self._closed)

    def _set_phase(self, target: ConnectionPhase, trigger: str = "") -> None:
        self.phase = transition(self.phase, target, self._source.url, trigger)

    def _start(self, hooks: EventSourceHooks, trigger: str) -> None:
        loop = asyncio.get_running_loop()
        if self._closed is None or self._closed.done():
            self._closed = loop.create_future()
        self._set_phase(ConnectionPhase.CONNECTING, trigger)
        self._task = loop.create_task(self._run(hooks, self._signal))
        self._task.add_done_callback(self._on_task_done)

    def _on_task_done(self, task: asyncio.Task[None]) -> None:
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            log.error(
                "connection_task_failed",
                url=self._source.url,
                error=str(exc),
                error_type=type(exc).__name__,
            )

    def _cancel_task(self) -> None:
        task = self._task
        if task is None or task.done():
            return
        try:
            current = asyncio.current_task()
        except RuntimeError:
            current = None
        # A hook calling abort()/reconnect() runs inside the task; the
        # aborted signal stops it at the next check instead.
        if task is not current:
            task.cancel()

    def _emit_event(self, event: AbortEvent) -> None:
        if self.did_abort:
            return
        self.did_abort = True
        self._abort_event = event
        if self.phase is not ConnectionPhase.TERMINAL:
            self._set_phase(ConnectionPhase.TERMINAL, event.type.value)
        log.info(
            "abort_event",
            url=self._source.url,
            type=event.type.value,
            reason=event.reason,
        )
        self._signal.abort(event.reason or event.type.value)
        self._cancel_task()
        if self._closed is not None and not self._closed.done():
            self._closed.set_result(event)
        for listener in list(self._listeners):
            try:
                listener(event)
            except Exception:
                log.exception("hook_failed", url=self._source.url, hook="on_abort_event")

    def _next_signal(self, signal: AbortSignal) -> AbortSignal | None:
        """Replace the attempt signal before a retry, unless superseded."""
        if signal is not self._signal or signal.aborted:
            return None
        signal.abort("retry")
        self._signal = AbortSignal()
        return self._signal

    def _start_timer(self, signal: AbortSignal) -> asyncio.TimerHandle | None:
        timeout_ms = self._source.settings.timeout_ms
        if not timeout_ms:
            return None
        return asyncio.get_running_loop().call_later(
            timeout_ms / 1000, self._on_timeout, signal, timeout_ms
        )

    def _on_timeout(self, signal: AbortSignal, timeout_ms: int) -> None:
        if signal.aborted or signal is not self._signal:
            return
        log.warning("request_timeout", url=self._source.url, timeout_ms=timeout_ms)
        self._emit_event(AbortEvent(AbortEventType.ERROR, f"Timeout of {timeout_ms}ms exceeded"))

    async def _run(self, hooks: EventSourceHooks, signal: AbortSignal) -> None:
        """Attempt, then back off and retry until aborted or exhausted."""
        state = self.state
        while True:
            should_retry = await self._attempt(hooks, signal)
            if not should_retry or signal.aborted:
                return
            if not state.register_failure():
                self._emit_event(
                    AbortEvent(AbortEventType.ERROR, "max retry count reached")
                )
                return
            delay_ms = state.next_retry_interval_ms()
            self._set_phase(ConnectionPhase.RETRYING, f"retry_count={state.retry_count}")
            log.info(
                "retry_scheduled",
                url=self._source.url,
                retry_count=state.retry_count,
                delay_ms=delay_ms,
            )
            await asyncio.sleep(delay_ms / 1000)
            next_signal = self._next_signal(signal)
            if next_signal is None:
                return
            signal = next_signal
            self._set_phase(ConnectionPhase.CONNECTING, "retry")

    async def _attempt(self, hooks: EventSourceHooks, signal: AbortSignal) -> bool:
        """Run one connection attempt. Returns True if a retry should follow."""
        source = self._source
        request = FetchRequest(
            url=source.url,
            method=source.settings.method,
            headers=httpx.Headers(),
            body=source.body,
            signal=signal,
        )
        context = FetchContext(request=request)
        log.info(
            "connection_attempt",
            url=source.url,
            method=request.method,
            retry_count=self.state.retry_count,
            last_event_id=self.state.last_event_id,
        )

        timer = self._start_timer(signal)
        try:
            request.headers = await build_request_headers(
                source.headers, self.state.last_event_id
            )
            if signal.aborted:
                return False
            await _call_hook(hooks.on_request, context)
            if signal.aborted:
                return False
            response = await source.fetch(request)
        except Exception as exc:
            failure: Exception | None = exc
        else:
            failure = None
        finally:
            if timer is not None:
                timer.cancel()

        if failure is not None:
            return await self._request_failed(hooks, context, failure, signal)
        context.response = response
        try:
            return await self._consume(hooks, context, signal)
        finally:
            await response.aclose()

    async def _request_failed(
        self,
        hooks: EventSourceHooks,
        context: FetchContext,
        exc: Exception,
        signal: AbortSignal,
    ) -> bool:
        if signal.aborted:
            log.debug("stale_error_discarded", url=self._source.url, error=str(exc))
            return False
        context.error = exc
        self._set_phase(ConnectionPhase.REQUEST_FAILED, type(exc).__name__)
        log.warning(
            "request_failed",
            url=self._source.url,
            error=str(exc),
            error_type=type(exc).__name__,
        )
        await self._call_error_hook(hooks.on_request_error, context, "on_request_error")
        return True

    async def _call_error_hook(
        self, hook: ContextHook | None, context: FetchContext, name: str
    ) -> None:
        try:
            await _call_hook(hook, context)
        except Exception:
            log.exception("hook_failed", url=self._source.url, hook=name)

    async def _consume(
        self,
        hooks: EventSourceHooks,
        context: FetchContext,
        signal: AbortSignal,
    ) -> bool:
        """Validate the response and dispatch its messages."""
        response = context.response
        assert response is not None
        if signal.aborted:
            return False

        error: Exception | None
        try:
            await _call_hook(hooks.on_response, context)
            error = _check_response(response)
        except Exception as exc:
            error = exc
        if signal.aborted:
            return False

        if error is not None:
            context.error = error
            self._set_phase(ConnectionPhase.RESPONSE_FAILED, f"status={response.status}")
            log.warning(
                "response_failed",
                url=self._source.url,
                status=response.status,
                error=str(error),
            )
            await self._call_error_hook(hooks.on_response_error, context, "on_response_error")
            return True

        self._set_phase(ConnectionPhase.STREAMING, f"status={response.status}")
        self.state.reset_backoff()
        log.info("stream_opened", url=self._source.url, status=response.status)

        assert response.stream is not None
        leftover = ""
        message_count = 0
        try:
            async with contextlib.aclosing(decode_stream(response.stream)) as texts:
                async for text in texts:
                    if signal.aborted:
                        return False
                    result = parse_chunk(leftover, text)
                    leftover = result.leftover
                    for message in result.messages:
                        await self._dispatch(hooks, message)
                        message_count += 1
                        # the hook may have called abort() or reconnect()
                        if signal.aborted:
                            return False
        except Exception as exc:
            if signal.aborted:
                log.debug("stale_error_discarded", url=self._source.url, error=str(exc))
                return False
            log.warning(
                "stream_failed",
                url=self._source.url,
                error=str(exc),
                error_type=type(exc).__name__,
                message_count=message_count,
            )
            return True

        if signal.aborted:
            return False
        log.info("stream_ended", url=self._source.url, message_count=message_count)
        if self.state.retry_strategy is RetryStrategy.ON_ERROR:
            self._emit_event(AbortEvent(AbortEventType.END_OF_STREAM, "Stream has ended"))
            return False
        return True

    async def _dispatch(self, hooks: EventSourceHooks, message: Message) -> None:
        self.state.record_event_id(message.id)
        await _call_hook(hooks.on_message, message)
