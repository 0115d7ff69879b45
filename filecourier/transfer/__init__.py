"""
Transfer Module - Encrypted File Send/Receive

Handles stream (TCP) and message (WebSocket) transfers between peers.
"""

from .protocol import TransferHeader, PAYLOAD_CHUNK_SIZE
from .receiver import (
    BaseReceiver, TransferServer, MessageTransferServer,
    TransferSession, SessionPhase,
)
from .sender import SentFile, prepare_transfer, send_file, send_file_ws

__all__ = [
    'TransferHeader',
    'PAYLOAD_CHUNK_SIZE',
    'BaseReceiver',
    'TransferServer',
    'MessageTransferServer',
    'TransferSession',
    'SessionPhase',
    'SentFile',
    'prepare_transfer',
    'send_file',
    'send_file_ws',
]
