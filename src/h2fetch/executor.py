"""Request execution: one session, one request, one close."""

from __future__ import annotations

import asyncio
import enum
import ssl
from contextlib import asynccontextmanager
from typing import Any, AsyncIterator, Awaitable, Callable, Mapping

from .errors import H2FetchError, RequestError, TimeoutError
from .logger import BoundLogger, create_logger, logger_for_call
from .response import Decoder, Response
from .transport.base import OutgoingRequest, Session, encode_body
from .transport.session import open_session
from .types import ProxyConfig, RawResponse, TargetURL, split_pseudo_headers

SessionOpener = Callable[..., Awaitable[Session]]


class RequestState(str, enum.Enum):
    IDLE = "idle"
    SESSION_ESTABLISHING = "session_establishing"
    SENDING = "sending"
    AWAITING_RESPONSE = "awaiting_response"
    COLLECTING = "collecting"
    CLOSED = "closed"


class Outcome(str, enum.Enum):
    SUCCESS = "success"
    ERROR = "error"
    TIMED_OUT = "timed_out"


class RequestExecutor:
    """Drives a single request through session setup, send, collect and close.

    An executor is single use. ``state`` and ``outcome`` stay readable after
    :meth:`run` returns or raises.
    """

    def __init__(
        self,
        target: TargetURL,
        method: str,
        headers: Mapping[str, str] | None = None,
        body: bytes | str | None = None,
        *,
        proxy: ProxyConfig | None = None,
        ssl_context: ssl.SSLContext | None = None,
        logger: BoundLogger | None = None,
        session_opener: SessionOpener | None = None,
        decoders: Mapping[str, Decoder] | None = None,
    ) -> None:
        self._request = OutgoingRequest(
            method=method,
            target=target,
            headers=dict(headers or {}),
            body=encode_body(body),
        )
        self._proxy = proxy
        self._ssl_context = ssl_context
        self._base_logger = create_logger(logger=logger)
        self._logger = self._base_logger.child("executor")
        self._session_opener = session_opener or open_session
        self._decoders = decoders
        self.state = RequestState.IDLE
        self.outcome: Outcome | None = None
        self.session: Session | None = None

    async def run(self) -> Response:
        if self.state is not RequestState.IDLE:
            raise RequestError("Request failed: executor has already run")
        try:
            async with self._session_scope() as session:
                raw = await self._exchange(session)
        except asyncio.CancelledError:
            self.outcome = Outcome.TIMED_OUT
            raise
        except TimeoutError:
            self.outcome = Outcome.TIMED_OUT
            raise
        except BaseException:
            self.outcome = Outcome.ERROR
            raise
        self.outcome = Outcome.SUCCESS
        return Response(raw, decoders=self._decoders)

    @asynccontextmanager
    async def _session_scope(self) -> AsyncIterator[Session]:
        self._transition(RequestState.SESSION_ESTABLISHING)
        try:
            session = await self._session_opener(
                self._request.target,
                self._proxy,
                ssl_context=self._ssl_context,
                logger=self._base_logger,
            )
        except BaseException:
            self._transition(RequestState.CLOSED)
            raise
        self.session = session
        try:
            yield session
        finally:
            self._transition(RequestState.CLOSED)
            await session.close()

    async def _exchange(self, session: Session) -> RawResponse:
        self._transition(RequestState.SENDING)
        self._logger.debug(
            "%s %s://%s%s over %s",
            self._request.method,
            self._request.target.scheme,
            self._request.target.authority,
            self._request.target.path,
            session.kind.value,
        )
        await session.send(self._request)
        self._transition(RequestState.AWAITING_RESPONSE)
        head = await session.receive_head()

        self._transition(RequestState.COLLECTING)
        chunks: list[bytes] = []
        async for chunk in session.stream_body():
            chunks.append(chunk)
        body = b"".join(chunks)

        headers, pseudo_headers = split_pseudo_headers(head.headers)
        self._logger.debug("Response status=%s bytes=%d", head.status, len(body))
        return RawResponse(
            status=head.status,
            headers=headers,
            pseudo_headers=pseudo_headers,
            raw_body=body,
            remote_address=session.remote_address,
            protocol=session.kind,
        )

    def _transition(self, state: RequestState) -> None:
        self._logger.trace("state %s -> %s", self.state.value, state.value)
        self.state = state


async def request(
    url: str,
    method: str = "GET",
    headers: Mapping[str, str] | None = None,
    body: bytes | str | None = None,
    *,
    proxy: ProxyConfig | None = None,
    signal: asyncio.Event | None = None,
    timeout_ms: int | None = None,
    debug: bool = False,
    ssl_context: ssl.SSLContext | None = None,
    logger: Any | None = None,
    session_opener: SessionOpener | None = None,
    decoders: Mapping[str, Decoder] | None = None,
) -> Response:
    """Perform one HTTP request over HTTP/2 (or HTTP/1.1 when ALPN says so).

    ``timeout_ms`` and ``signal`` cover every phase from connect to the end
    of the body. Either one firing cancels the in-flight work, closes the
    session and raises :class:`~h2fetch.errors.TimeoutError`.
    """
    target = TargetURL.parse(url)
    log = logger_for_call(logger, debug)
    executor = RequestExecutor(
        target,
        method,
        headers,
        body,
        proxy=proxy,
        ssl_context=ssl_context,
        logger=log,
        session_opener=session_opener,
        decoders=decoders,
    )
    return await _run_with_deadline(executor, signal=signal, timeout_ms=timeout_ms, logger=log)


async def _run_with_deadline(
    executor: RequestExecutor,
    *,
    signal: asyncio.Event | None,
    timeout_ms: int | None,
    logger: BoundLogger,
) -> Response:
    if signal is not None and signal.is_set():
        executor.outcome = Outcome.TIMED_OUT
        raise TimeoutError("Request timed out: cancelled before start")

    timeout = timeout_ms / 1000 if timeout_ms is not None else None
    task = asyncio.ensure_future(executor.run())
    waiters: set[asyncio.Future[Any]] = {task}
    cancel_waiter: asyncio.Future[Any] | None = None
    if signal is not None:
        cancel_waiter = asyncio.ensure_future(signal.wait())
        waiters.add(cancel_waiter)

    try:
        done, _ = await asyncio.wait(waiters, timeout=timeout, return_when=asyncio.FIRST_COMPLETED)
    except BaseException:
        await _cancel(task)
        raise
    finally:
        if cancel_waiter is not None:
            cancel_waiter.cancel()

    if task in done:
        return task.result()

    reason = "cancelled" if cancel_waiter is not None and cancel_waiter in done else f"after {timeout_ms}ms"
    logger.warn("Request timed out (%s) in state %s", reason, executor.state.value)
    await _cancel(task)
    executor.outcome = Outcome.TIMED_OUT
    raise TimeoutError(f"Request timed out ({reason})", context={"state": executor.state.value})


async def _cancel(task: asyncio.Future[Any]) -> None:
    if task.done():
        if not task.cancelled():
            # Retrieve the exception so it is not reported as unhandled.
            task.exception()
        return
    task.cancel()
    try:
        await task
    except asyncio.CancelledError:
        pass
    except H2FetchError:
        pass


__all__ = ["Outcome", "RequestExecutor", "RequestState", "request"]
