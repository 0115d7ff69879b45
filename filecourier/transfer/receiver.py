"""
Transfer Receivers

Design Decision: Connection Handling
====================================

Options Considered:
1. Sequential accept-and-process
   - One slow sender blocks everyone

2. Thread per connection
   - Works, but the rest of the code is asyncio

3. Task per connection on the event loop
   - Cheap, and a crash in one task cannot reach the listener
   - CPU-heavy crypto pushed to worker threads keeps the loop responsive

Decision: Task per connection with an explicit error boundary
- Every worker owns one TransferSession; nothing mutable is shared
- Any failure ends only that worker: logged, reported, artifacts removed
- Listeners run until a stop event is set

Worker Flow:
1. (message transport) WebSocket handshake
2. Parse header
3. Recover the file key using the transmitted envelope key
4. Accumulate the encrypted payload into an on-disk artifact
5. Decrypt the artifact into the destination file
6. Verify the SHA-256 digest (mismatch is reported, file is kept)
7. Remove the artifact
"""

import asyncio
import logging
import os
import tempfile
import time
from collections import deque
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Awaitable, Callable, Deque, Optional, Union

import aiofiles
from websockets.asyncio.server import ServerConnection, serve
from websockets.exceptions import ConnectionClosedError

from .protocol import TransferHeader, PAYLOAD_CHUNK_SIZE
from ..api.events import EventBus, Failed, Received, publish
from ..crypto import decrypt, decrypt_file, remove_quietly
from ..errors import (
    ArtifactFormatError, DecryptionError, MalformedHeaderError,
    TransferError, TransportError,
)
from ..file import digest_file, digests_match, format_peer, resolve_unique_name, sanitize_filename

logger = logging.getLogger(__name__)

# Finished sessions kept for inspection
SESSION_HISTORY = 100


class SessionPhase(Enum):
    """Where a receiving worker is in its pipeline."""
    HANDSHAKE = "handshake"
    HEADER_PARSE = "header_parse"
    KEY_RECOVERY = "key_recovery"
    PAYLOAD_ACCUMULATE = "payload_accumulate"
    FILE_DECRYPT = "file_decrypt"
    INTEGRITY_CHECK = "integrity_check"
    FINALIZE = "finalize"
    DONE = "done"
    FAILED = "failed"


@dataclass
class TransferSession:
    """State of one inbound connection."""
    peer: str
    transport: str  # 'stream' or 'message'
    output_dir: Path
    phase: SessionPhase = SessionPhase.HANDSHAKE
    header: Optional[TransferHeader] = None
    bytes_received: int = 0
    artifact_path: Optional[Path] = None
    output_path: Optional[Path] = None
    verified: Optional[bool] = None
    error: Optional[str] = None
    failed_phase: Optional[SessionPhase] = None
    started_at: float = field(default_factory=time.time)
    finished_at: Optional[float] = None

    @property
    def succeeded(self) -> bool:
        return self.phase == SessionPhase.DONE

    @property
    def filename(self) -> str:
        return self.header.filename if self.header else ''

    def to_dict(self) -> dict:
        """Convert to dictionary for JSON serialization."""
        return {
            'peer': self.peer,
            'transport': self.transport,
            'phase': self.phase.value,
            'filename': self.filename,
            'bytes_received': self.bytes_received,
            'output_path': str(self.output_path) if self.output_path else None,
            'verified': self.verified,
            'error': self.error,
            'failed_phase': self.failed_phase.value if self.failed_phase else None,
        }


def describe_error(error: BaseException) -> str:
    """Short label for the kind of failure."""
    if isinstance(error, MalformedHeaderError):
        return "malformed header"
    if isinstance(error, ArtifactFormatError):
        return "malformed artifact"
    if isinstance(error, DecryptionError):
        return "decryption failed"
    if isinstance(error, (TransportError, ConnectionError)):
        return "transport error"
    if isinstance(error, OSError):
        return "filesystem error"
    return "internal error"


class BaseReceiver:
    """
    Shared worker pipeline for both transports.

    Subclasses own the listening socket and feed sessions into
    _run_session().
    """

    transport = ''

    def __init__(self, output_dir: Union[str, Path], host: str = '0.0.0.0',
                 port: int = 0, chunk_size: int = PAYLOAD_CHUNK_SIZE,
                 events: Optional[EventBus] = None,
                 session_history: int = SESSION_HISTORY):
        self.output_dir = Path(output_dir)
        self.host = host
        self.port = port
        self.chunk_size = chunk_size
        self.events = events
        self.server = None

        # Most recent finished sessions, oldest first
        self.sessions: Deque[TransferSession] = deque(maxlen=session_history)

        # Statistics
        self.sessions_finished = 0
        self.files_received = 0
        self.files_failed = 0
        self.bytes_received = 0

    async def start(self):
        raise NotImplementedError

    async def stop(self):
        raise NotImplementedError

    async def serve(self, stop_event: asyncio.Event):
        """Accept connections until stop_event is set."""
        await self.start()
        try:
            await stop_event.wait()
        finally:
            await self.stop()

    def get_stats(self) -> dict:
        """Get receiver statistics."""
        return {
            'transport': self.transport,
            'port': self.port,
            'sessions_finished': self.sessions_finished,
            'files_received': self.files_received,
            'files_failed': self.files_failed,
            'bytes_received': self.bytes_received,
            'recent_sessions': [s.to_dict() for s in self.sessions],
        }

    # === Worker pipeline ===

    def _new_session(self, peer) -> TransferSession:
        return TransferSession(
            peer=format_peer(peer),
            transport=self.transport,
            output_dir=self.output_dir,
        )

    async def _run_session(self, session: TransferSession,
                           pipeline: Callable[[], Awaitable[None]]):
        """Run one worker; failures stay inside this call."""
        try:
            await pipeline()
        except Exception as e:
            session.failed_phase = session.phase
            session.phase = SessionPhase.FAILED
            session.error = f"{describe_error(e)}: {e}"
            self.files_failed += 1

            if isinstance(e, (TransferError, OSError)):
                logger.error(f"Transfer from {session.peer} failed during "
                             f"{session.failed_phase.value}: {session.error}")
            else:
                logger.exception(f"Unexpected error handling {session.peer}")

            publish(self.events, Failed(
                file=session.filename or session.peer,
                reason=session.error,
            ))
        finally:
            if session.artifact_path is not None:
                remove_quietly(session.artifact_path)
                session.artifact_path = None
            session.finished_at = time.time()
            self.sessions.append(session)
            self.sessions_finished += 1

    async def _recover_file_key(self, session: TransferSession) -> str:
        session.phase = SessionPhase.KEY_RECOVERY
        header = session.header
        plaintext = await asyncio.to_thread(
            decrypt, header.envelope_key, header.salt, header.nonce, header.ciphertext
        )
        try:
            return plaintext.decode('utf-8')
        except UnicodeDecodeError:
            raise DecryptionError("decryption failed: file key is not UTF-8") from None

    def _create_artifact(self, session: TransferSession) -> Path:
        """Reserve a temp file for the encrypted payload in the output dir."""
        self.output_dir.mkdir(parents=True, exist_ok=True)
        prefix = f".{sanitize_filename(session.filename)[:64]}."
        fd, name = tempfile.mkstemp(prefix=prefix, suffix='.enc', dir=self.output_dir)
        os.close(fd)
        session.artifact_path = Path(name)
        return session.artifact_path

    async def _decrypt_and_verify(self, session: TransferSession, file_key: str):
        header = session.header

        session.phase = SessionPhase.FILE_DECRYPT
        base_name = sanitize_filename(header.filename)
        while True:
            name = resolve_unique_name(self.output_dir, base_name, session.peer)
            session.output_path = self.output_dir / name
            try:
                await asyncio.to_thread(
                    decrypt_file, session.artifact_path, file_key, session.output_path
                )
                break
            except FileExistsError:
                # Another worker claimed the name while we were decrypting
                logger.debug(f"{session.output_path} was taken, resolving again")

        session.phase = SessionPhase.INTEGRITY_CHECK
        actual = await digest_file(session.output_path)
        session.verified = digests_match(header.digest, actual)
        if session.verified:
            logger.info(f"Received {header.filename} from {session.peer}, "
                        f"saved as {session.output_path}")
        else:
            logger.warning(f"SHA-256 mismatch for {session.output_path}: "
                           f"expected {header.digest}, got {actual}")

        session.phase = SessionPhase.FINALIZE
        remove_quietly(session.artifact_path)
        session.artifact_path = None

        self.files_received += 1
        self.bytes_received += session.bytes_received
        publish(self.events, Received(file=str(session.output_path),
                                      verified=session.verified))
        session.phase = SessionPhase.DONE


class TransferServer(BaseReceiver):
    """
    TCP server for the stream transport.

    Wire format: fixed-width header followed by the encrypted payload
    until the sender closes the connection.
    """

    transport = 'stream'

    async def start(self):
        """Start the transfer server."""
        self.server = await asyncio.start_server(
            self._handle_connection,
            self.host,
            self.port
        )
        addr = self.server.sockets[0].getsockname()
        self.port = addr[1]
        logger.info(f"TCP receiver listening on {addr}, saving to {self.output_dir}")

    async def stop(self):
        """Stop accepting connections."""
        if self.server:
            self.server.close()
            await self.server.wait_closed()
            self.server = None
            logger.info("TCP receiver stopped")

    async def _handle_connection(self, reader: asyncio.StreamReader,
                                 writer: asyncio.StreamWriter):
        """Handle an incoming connection."""
        session = self._new_session(writer.get_extra_info('peername'))
        logger.info(f"TCP connection from {session.peer}")

        try:
            await self._run_session(session, lambda: self._receive(session, reader))
        finally:
            writer.close()
            try:
                await writer.wait_closed()
            except OSError:
                pass
            logger.debug(f"Connection closed: {session.peer}")

    async def _receive(self, session: TransferSession, reader: asyncio.StreamReader):
        session.phase = SessionPhase.HEADER_PARSE
        session.header = await TransferHeader.from_reader(reader)

        file_key = await self._recover_file_key(session)

        session.phase = SessionPhase.PAYLOAD_ACCUMULATE
        artifact = self._create_artifact(session)
        async with aiofiles.open(artifact, 'wb') as f:
            while True:
                chunk = await reader.read(self.chunk_size)
                if not chunk:
                    break
                await f.write(chunk)
                session.bytes_received += len(chunk)

        logger.debug(f"Payload from {session.peer} complete: {session.bytes_received} bytes")
        await self._decrypt_and_verify(session, file_key)


class MessageTransferServer(BaseReceiver):
    """
    WebSocket server for the message transport.

    Frames are buffered until the sender closes. A leading text frame is
    the JSON header and the binary frames are the payload. Without a text
    frame, the binary buffer is parsed with the stream layout.
    """

    transport = 'message'

    async def start(self):
        """Start the WebSocket server."""
        self.server = await serve(
            self._handle_connection,
            self.host,
            self.port,
            max_size=None,
        )
        addr = list(self.server.sockets)[0].getsockname()
        self.port = addr[1]
        logger.info(f"WebSocket receiver listening on {addr}, saving to {self.output_dir}")

    async def stop(self):
        """Stop accepting connections; transfers in flight run to completion."""
        if self.server:
            self.server.close(close_connections=False)
            await self.server.wait_closed()
            self.server = None
            logger.info("WebSocket receiver stopped")

    async def _handle_connection(self, connection: ServerConnection):
        session = self._new_session(connection.remote_address)
        logger.info(f"WebSocket connection from {session.peer}")
        await self._run_session(session, lambda: self._receive(session, connection))

    async def _receive(self, session: TransferSession, connection: ServerConnection):
        session.phase = SessionPhase.PAYLOAD_ACCUMULATE
        header_frame: Optional[str] = None
        buffer = bytearray()

        try:
            async for message in connection:
                if isinstance(message, str):
                    if header_frame is None and not buffer:
                        header_frame = message
                    else:
                        logger.debug(f"Ignoring extra text frame from {session.peer}")
                else:
                    buffer.extend(message)
        except ConnectionClosedError as e:
            raise TransportError(f"connection closed abnormally: {e}") from e

        session.phase = SessionPhase.HEADER_PARSE
        if header_frame is not None:
            session.header = TransferHeader.from_json(header_frame)
            payload = buffer
        else:
            session.header, offset = TransferHeader.from_buffer(buffer)
            payload = buffer[offset:]

        file_key = await self._recover_file_key(session)

        session.phase = SessionPhase.PAYLOAD_ACCUMULATE
        artifact = self._create_artifact(session)
        async with aiofiles.open(artifact, 'wb') as f:
            await f.write(bytes(payload))
        session.bytes_received = len(payload)

        await self._decrypt_and_verify(session, file_key)
