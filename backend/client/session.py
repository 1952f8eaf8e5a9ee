# backend/client/session.py
from __future__ import annotations

import asyncio
from datetime import datetime, timezone
from enum import Enum
import logging
import uuid
from typing import Any, Callable, Dict, Iterable, List, Optional, Set

from pydantic import ValidationError
from tenacity import (
    AsyncRetrying,
    RetryCallState,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential_jitter,
)

from client.buffer import MessageBuffer
from client.transport import Transport
from core.config import Settings, settings as default_settings
from core.exceptions import TransportFailure
from models.models import Attachment, ChatMessage, Identity

logger = logging.getLogger(__name__)

JOIN_ROOM = "join-room"
LEAVE_ROOM = "leave-room"
SEND_MESSAGE = "send-message"
RECEIVE_MESSAGE = "receive-message"
ERROR = "error"


class SessionState(str, Enum):
    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    CONNECTED = "connected"


# ============================================================================
# CLIENT SESSION CONTROLLER
# ============================================================================

class ChatSession:
    """
    Client side of the course chat: connection lifecycle and local buffers.

    States:
        disconnected --start()--> connecting --handshake--> connected
        connected --transport failure--> connecting (automatic)
        any --stop() or retries exhausted--> disconnected

    Reconnection:
        Each connect is tried once and then retried up to
        ``max_reconnect_attempts`` times. The wait starts at
        ``reconnect_delay``, doubles with jitter and is capped at
        ``reconnect_delay_max``. A
        successful connect starts a fresh retry budget. After the last
        failure the session stays disconnected.

        Rooms joined through the session are joined again after every
        successful connect, since the server drops membership with the old
        connection.

    Sending:
        ``send`` appends the message to the local buffer immediately and
        queues the publish frame. The server echoes the message back with
        the same id and the buffer drops the echo. The optimistic copy is
        kept even if the publish is later rejected.

    Callbacks:
        on_message(ChatMessage): a message from the server was buffered
        on_error(str): the server rejected one of our frames
        on_state_change(SessionState): the state changed
    """

    def __init__(
        self,
        transport: Transport,
        max_reconnect_attempts: Optional[int] = None,
        reconnect_delay: Optional[float] = None,
        reconnect_delay_max: Optional[float] = None,
        on_message: Optional[Callable[[ChatMessage], Any]] = None,
        on_error: Optional[Callable[[str], Any]] = None,
        on_state_change: Optional[Callable[[SessionState], Any]] = None,
        settings: Optional[Settings] = None,
    ) -> None:
        settings = settings or default_settings
        self.transport = transport
        self.max_reconnect_attempts = (
            settings.RECONNECT_ATTEMPTS if max_reconnect_attempts is None else max_reconnect_attempts
        )
        self.reconnect_delay = settings.RECONNECT_DELAY if reconnect_delay is None else reconnect_delay
        self.reconnect_delay_max = (
            settings.RECONNECT_DELAY_MAX if reconnect_delay_max is None else reconnect_delay_max
        )
        # Doubling from reconnect_delay up to reconnect_delay_max, plus up to one
        # reconnect_delay of jitter
        self.reconnect_wait = wait_exponential_jitter(
            initial=self.reconnect_delay, max=self.reconnect_delay_max, jitter=self.reconnect_delay
        )
        self.on_message = on_message
        self.on_error = on_error
        self.on_state_change = on_state_change

        self.identity: Optional[Identity] = None
        self.buffer = MessageBuffer()
        self._rooms: Set[str] = set()
        self._outbox: asyncio.Queue = asyncio.Queue()
        self._task: Optional[asyncio.Task] = None
        self._state = SessionState.DISCONNECTED
        self._state_events: Dict[SessionState, asyncio.Event] = {state: asyncio.Event() for state in SessionState}
        self._state_events[SessionState.DISCONNECTED].set()

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    @property
    def state(self) -> SessionState:
        return self._state

    @property
    def rooms(self) -> Set[str]:
        return set(self._rooms)

    async def start(self, identity: Identity) -> None:
        """Begin connecting as ``identity``. Returns once the session is connecting."""
        if self._task is not None and not self._task.done():
            raise RuntimeError("Session already started")
        self.identity = identity
        self._set_state(SessionState.CONNECTING)
        self._task = asyncio.create_task(self._run())

    async def stop(self) -> None:
        """Disconnect now. Frames not yet written, joins included, are discarded."""
        task, self._task = self._task, None
        self._outbox = asyncio.Queue()
        self._rooms.clear()
        self._set_state(SessionState.DISCONNECTED)
        if task is not None:
            task.cancel()
            try:
                await task
            except asyncio.CancelledError:
                pass
            except Exception:
                logger.exception("Session task ended with an error")
        await self.transport.close()

    async def wait_for_state(self, state: SessionState, timeout: Optional[float] = None) -> None:
        await asyncio.wait_for(self._state_events[state].wait(), timeout)

    # ------------------------------------------------------------------
    # Rooms and messages
    # ------------------------------------------------------------------

    def join_room(self, room_id: str) -> None:
        self._rooms.add(room_id)
        if self._state is SessionState.CONNECTED:
            self._emit(JOIN_ROOM, {"roomId": room_id})

    def leave_room(self, room_id: str) -> None:
        self._rooms.discard(room_id)
        if self._state is SessionState.CONNECTED:
            self._emit(LEAVE_ROOM, {"roomId": room_id})

    def send(
        self,
        room_id: str,
        content: str,
        type: str = "text",
        attachments: Optional[Iterable[Attachment]] = None,
    ) -> ChatMessage:
        """
        Send a message to a room.

        The message is buffered locally before the frame is written. While
        connecting the frame waits in the outbound queue.

        Raises:
            TransportFailure: the session is disconnected
        """
        if self._state is SessionState.DISCONNECTED or self.identity is None:
            raise TransportFailure("Session is disconnected")

        attachments = [
            a if isinstance(a, Attachment) else Attachment.model_validate(a)
            for a in (attachments or [])
        ]
        message = ChatMessage(
            id=uuid.uuid4().hex,
            room_id=room_id,
            sender=self.identity,
            content=content,
            type=type,
            attachments=attachments,
            timestamp=datetime.now(timezone.utc),
        )
        self.buffer.append(message)

        payload = message.to_payload()
        self._emit(
            SEND_MESSAGE,
            {
                "id": message.id,
                "roomId": room_id,
                "content": content,
                "type": type,
                "attachments": payload["attachments"],
                "timestamp": payload["timestamp"],
            },
        )
        return message

    def get_messages(self, room_id: str) -> List[ChatMessage]:
        return self.buffer.get(room_id)

    def clear_messages(self, room_id: str) -> None:
        self.buffer.clear(room_id)

    # ------------------------------------------------------------------
    # Connection loop
    # ------------------------------------------------------------------

    async def _run(self) -> None:
        try:
            while True:
                self._set_state(SessionState.CONNECTING)
                try:
                    await self._connect()
                except TransportFailure as e:
                    logger.error(
                        "Giving up after %d connection attempts: %s", self.max_reconnect_attempts + 1, e
                    )
                    break

                self._set_state(SessionState.CONNECTED)
                try:
                    await self._serve()
                except TransportFailure as e:
                    logger.warning("Connection lost: %s", e)
                finally:
                    await self.transport.close()
        finally:
            self._set_state(SessionState.DISCONNECTED)

    async def _connect(self) -> None:
        async for attempt in AsyncRetrying(
            retry=retry_if_exception_type(TransportFailure),
            stop=stop_after_attempt(self.max_reconnect_attempts + 1),
            wait=self.reconnect_wait,
            before_sleep=self._log_retry,
            reraise=True,
        ):
            with attempt:
                await self.transport.connect(self.identity)

    async def _serve(self) -> None:
        for room_id in sorted(self._rooms):
            await self.transport.send(JOIN_ROOM, {"roomId": room_id})

        reader = asyncio.create_task(self._read_loop())
        writer = asyncio.create_task(self._write_loop())
        try:
            done, _ = await asyncio.wait({reader, writer}, return_when=asyncio.FIRST_COMPLETED)
        finally:
            reader.cancel()
            writer.cancel()
            await asyncio.gather(reader, writer, return_exceptions=True)

        for task in done:
            try:
                task.result()
            except TransportFailure:
                raise
            except Exception as e:
                # Anything else escaping the transport still means the link is gone
                raise TransportFailure(f"Transport error: {e!r}") from e

    async def _read_loop(self) -> None:
        while True:
            event, data = await self.transport.receive()
            self._handle(event, data)

    async def _write_loop(self) -> None:
        while True:
            event, data = await self._outbox.get()
            await self.transport.send(event, data)

    def _handle(self, event: str, data: Any) -> None:
        if event == RECEIVE_MESSAGE:
            try:
                message = ChatMessage.model_validate(data)
            except ValidationError as e:
                logger.warning("Ignoring malformed message: %s", e)
                return
            if self.buffer.append(message) and self.on_message is not None:
                self._callback(self.on_message, message)
        elif event == ERROR:
            detail = data.get("message", "") if isinstance(data, dict) else str(data)
            logger.warning("Server error: %s", detail)
            if self.on_error is not None:
                self._callback(self.on_error, detail)
        else:
            logger.debug("Event %s: %s", event, data)

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _emit(self, event: str, data: dict) -> None:
        self._outbox.put_nowait((event, data))

    @staticmethod
    def _log_retry(retry_state: RetryCallState) -> None:
        logger.warning(
            "Connection attempt %d failed (%s), retrying in %.2fs",
            retry_state.attempt_number,
            retry_state.outcome.exception(),
            retry_state.next_action.sleep,
        )

    def _set_state(self, state: SessionState) -> None:
        if state is self._state:
            return
        self._state_events[self._state].clear()
        self._state = state
        self._state_events[state].set()
        logger.info("Session %s", state.value)
        if self.on_state_change is not None:
            self._callback(self.on_state_change, state)

    @staticmethod
    def _callback(callback: Callable, *args: Any) -> None:
        try:
            callback(*args)
        except Exception:
            logger.exception("Session callback %r failed", callback)
