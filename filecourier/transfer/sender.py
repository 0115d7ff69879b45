"""
File Sender

Send Flow:
1. SHA-256 of the plaintext file
2. Generate FileKey and EnvelopeKey
3. Encrypt the file under FileKey into a temporary artifact
4. Encrypt FileKey under EnvelopeKey
5. Connect, send the header, stream the artifact, close
6. Delete the artifact

Any failure aborts the whole send; nothing is retried.
"""

import asyncio
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Optional, Tuple, Union

import aiofiles
from websockets.asyncio.client import connect
from websockets.exceptions import ConnectionClosed, InvalidHandshake, InvalidURI

from .protocol import TransferHeader, PAYLOAD_CHUNK_SIZE
from ..api.events import EventBus, Failed, Finished, Started, publish
from ..crypto import encrypt, encrypt_file, generate_secret, remove_quietly
from ..errors import TransportError
from ..file import digest_file

logger = logging.getLogger(__name__)


@dataclass
class SentFile:
    """Summary of a completed send."""
    filename: str
    size: int
    digest: str
    payload_size: int


async def prepare_transfer(file_path: Union[str, Path],
                           temp_dir: Optional[Path] = None) -> Tuple[TransferHeader, Path]:
    """
    Digest and encrypt a file for sending.

    Returns:
        (header, artifact_path); the caller owns the artifact
    """
    file_path = Path(file_path)
    if not file_path.is_file():
        raise FileNotFoundError(f"File not found: {file_path}")

    digest = await digest_file(file_path)

    file_key = generate_secret()
    envelope_key = generate_secret()

    artifact = await asyncio.to_thread(
        encrypt_file, file_path, file_key, None, temp_dir
    )
    try:
        salt, nonce, ciphertext = await asyncio.to_thread(
            encrypt, envelope_key, file_key.encode('utf-8')
        )
    except Exception:
        remove_quietly(artifact)
        raise

    header = TransferHeader(
        filename=file_path.name,
        digest=digest,
        salt=salt,
        nonce=nonce,
        ciphertext=ciphertext,
        envelope_key=envelope_key,
    )
    return header, artifact


async def _send(file_path: Union[str, Path], events: Optional[EventBus],
                temp_dir: Optional[Path], deliver) -> SentFile:
    """Run the send pipeline around a transport-specific deliver()."""
    file_path = Path(file_path)
    publish(events, Started(file=str(file_path)))

    artifact = None
    try:
        header, artifact = await prepare_transfer(file_path, temp_dir)
        await deliver(header, artifact)

        result = SentFile(
            filename=header.filename,
            size=file_path.stat().st_size,
            digest=header.digest,
            payload_size=artifact.stat().st_size,
        )
    except Exception as e:
        publish(events, Failed(file=str(file_path), reason=str(e)))
        raise
    finally:
        remove_quietly(artifact)

    publish(events, Finished(file=str(file_path)))
    return result


async def send_file(host: str, port: int, file_path: Union[str, Path],
                    chunk_size: int = PAYLOAD_CHUNK_SIZE,
                    connect_timeout: float = 10.0,
                    events: Optional[EventBus] = None,
                    temp_dir: Optional[Path] = None) -> SentFile:
    """
    Send a file over the stream transport.

    Args:
        host: Receiver address
        port: Receiver TCP port
        file_path: File to send
        chunk_size: Payload write size
        connect_timeout: Seconds to wait for the TCP connection
        events: Optional bus for Started/Finished/Failed events
        temp_dir: Where to put the encrypted artifact

    Returns:
        SentFile summary
    """
    async def deliver(header: TransferHeader, artifact: Path):
        try:
            reader, writer = await asyncio.wait_for(
                asyncio.open_connection(host, port),
                timeout=connect_timeout
            )
        except (OSError, asyncio.TimeoutError) as e:
            raise TransportError(f"Failed to connect to {host}:{port}: {e}") from e

        logger.info(f"Connected to {host}:{port} over TCP")
        try:
            writer.write(header.to_bytes())
            await writer.drain()

            async with aiofiles.open(artifact, 'rb') as f:
                while True:
                    chunk = await f.read(chunk_size)
                    if not chunk:
                        break
                    writer.write(chunk)
                    await writer.drain()

            writer.close()
            await writer.wait_closed()
        except ConnectionError as e:
            raise TransportError(f"Connection to {host}:{port} lost: {e}") from e
        finally:
            if not writer.is_closing():
                writer.close()

        logger.info(f"Sent {header.filename} to {host}:{port}")

    return await _send(file_path, events, temp_dir, deliver)


async def send_file_ws(host: str, port: int, file_path: Union[str, Path],
                       chunk_size: int = PAYLOAD_CHUNK_SIZE,
                       connect_timeout: float = 10.0,
                       events: Optional[EventBus] = None,
                       temp_dir: Optional[Path] = None,
                       path: str = '/') -> SentFile:
    """
    Send a file over the message transport.

    One JSON header frame, then binary frames of up to chunk_size bytes,
    then a normal close.
    """
    if not path.startswith('/'):
        path = '/' + path
    url = f"ws://{host}:{port}{path}"

    async def deliver(header: TransferHeader, artifact: Path):
        try:
            websocket = await connect(url, max_size=None, open_timeout=connect_timeout)
        except (OSError, asyncio.TimeoutError, InvalidHandshake, InvalidURI) as e:
            raise TransportError(f"WebSocket connection to {url} failed: {e}") from e

        logger.info(f"Connected to {url}")
        try:
            await websocket.send(header.to_json())

            async with aiofiles.open(artifact, 'rb') as f:
                while True:
                    chunk = await f.read(chunk_size)
                    if not chunk:
                        break
                    await websocket.send(chunk)
        except ConnectionClosed as e:
            raise TransportError(f"WebSocket connection to {url} lost: {e}") from e
        finally:
            await websocket.close()

        logger.info(f"Sent {header.filename} to {url}")

    return await _send(file_path, events, temp_dir, deliver)
