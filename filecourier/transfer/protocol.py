"""
File Transfer Protocol

Design Decision: Header Encoding
================================

Options Considered:
1. Length-prefixed JSON header on both transports
   - Self-describing, easy to extend
   - Not what existing stream peers speak

2. Fixed-width binary header
   - Field boundaries come from widths alone, no delimiters or escaping
   - Compact, trivially validated

3. Fixed-width on TCP, JSON text frame on WebSocket
   - Each transport uses its natural framing

Decision: Option 3, with a fixed-width fallback on WebSocket
- Stream transport: fixed-width header, payload until close
- Message transport: one JSON text frame, then binary payload frames
- A WebSocket receiver that never sees a text frame parses the binary
  buffer with the stream layout instead

Stream Format:
```
+---------+----------+-----------+---------+----------+---------+------------+-----------+
| Len(4B) | Filename | SHA256    | Salt    | Nonce    | Key CT  | Env. key   | Payload   |
| BE u32  | (Len B)  | hex (64B) | hex(32B)| hex (24B)| hex(64B)| (16B)      | until EOF |
+---------+----------+-----------+---------+----------+---------+------------+-----------+
```

Header Frame (message transport):
{
    "filename": "report.pdf",
    "sha256": "<64 hex>",
    "salt": "<32 hex>",
    "nonce": "<24 hex>",
    "ct": "<64 hex>",
    "password_b": "<16 chars>"
}
"""

import asyncio
import json
import struct
import logging
import string
from dataclasses import dataclass
from typing import Any, Dict, Tuple

from ..errors import MalformedHeaderError
from ..file.naming import DEFAULT_FILENAME

logger = logging.getLogger(__name__)

# Field widths (bytes on the wire)
LENGTH_PREFIX_SIZE = 4
DIGEST_HEX_LENGTH = 64
SALT_HEX_LENGTH = 32
NONCE_HEX_LENGTH = 24
KEY_CIPHERTEXT_HEX_LENGTH = 64
ENVELOPE_KEY_LENGTH = 16

FIXED_FIELDS_SIZE = (
    DIGEST_HEX_LENGTH + SALT_HEX_LENGTH + NONCE_HEX_LENGTH +
    KEY_CIPHERTEXT_HEX_LENGTH + ENVELOPE_KEY_LENGTH
)

MAX_FILENAME_LENGTH = 4096

# Payload read size / frame size
PAYLOAD_CHUNK_SIZE = 4096

_HEX_DIGITS = set(string.hexdigits)


def _check_hex(name: str, value: str, width: int):
    if len(value) != width:
        raise MalformedHeaderError(
            f"{name}: expected {width} characters, got {len(value)}"
        )
    if not set(value) <= _HEX_DIGITS:
        raise MalformedHeaderError(f"{name}: not a hex string")


def _decode_filename(raw: bytes) -> str:
    try:
        return raw.decode('utf-8')
    except UnicodeDecodeError:
        return DEFAULT_FILENAME


def _decode_ascii(name: str, raw: bytes) -> str:
    try:
        return raw.decode('ascii')
    except UnicodeDecodeError:
        raise MalformedHeaderError(f"{name}: not ASCII") from None


@dataclass
class TransferHeader:
    """The metadata block that precedes an encrypted payload."""
    filename: str
    digest: str        # SHA-256 of the plaintext, hex
    salt: str          # hex, wraps the file key
    nonce: str         # hex, wraps the file key
    ciphertext: str    # hex, wrapped file key + tag
    envelope_key: str  # sent as-is

    def validate(self):
        """Check every fixed-width field; raise MalformedHeaderError if off."""
        _check_hex('digest', self.digest, DIGEST_HEX_LENGTH)
        _check_hex('salt', self.salt, SALT_HEX_LENGTH)
        _check_hex('nonce', self.nonce, NONCE_HEX_LENGTH)
        _check_hex('ciphertext', self.ciphertext, KEY_CIPHERTEXT_HEX_LENGTH)

        key_bytes = self.envelope_key.encode('utf-8')
        if len(key_bytes) != ENVELOPE_KEY_LENGTH:
            raise MalformedHeaderError(
                f"envelope_key: expected {ENVELOPE_KEY_LENGTH} bytes, got {len(key_bytes)}"
            )

        if len(self.filename.encode('utf-8')) > MAX_FILENAME_LENGTH:
            raise MalformedHeaderError("filename too long")

    # === Stream transport ===

    def to_bytes(self) -> bytes:
        """Serialize to the stream-transport layout (header only)."""
        self.validate()
        name = self.filename.encode('utf-8')
        return (
            struct.pack('>I', len(name)) +
            name +
            self.digest.encode('ascii') +
            self.salt.encode('ascii') +
            self.nonce.encode('ascii') +
            self.ciphertext.encode('ascii') +
            self.envelope_key.encode('utf-8')
        )

    @classmethod
    async def from_reader(cls, reader: asyncio.StreamReader) -> 'TransferHeader':
        """
        Read a header from a stream, one exact-size field at a time.

        Raises:
            MalformedHeaderError: the stream ended early or a field is invalid
        """
        try:
            length = struct.unpack('>I', await reader.readexactly(LENGTH_PREFIX_SIZE))[0]
            if length > MAX_FILENAME_LENGTH:
                raise MalformedHeaderError(f"filename length too large: {length}")

            filename = _decode_filename(await reader.readexactly(length))
            digest = await reader.readexactly(DIGEST_HEX_LENGTH)
            salt = await reader.readexactly(SALT_HEX_LENGTH)
            nonce = await reader.readexactly(NONCE_HEX_LENGTH)
            ciphertext = await reader.readexactly(KEY_CIPHERTEXT_HEX_LENGTH)
            envelope_key = await reader.readexactly(ENVELOPE_KEY_LENGTH)
        except asyncio.IncompleteReadError as e:
            raise MalformedHeaderError(
                f"truncated header: expected {e.expected} bytes, got {len(e.partial)}"
            ) from None

        return cls._from_fields(filename, digest, salt, nonce, ciphertext, envelope_key)

    @classmethod
    def from_buffer(cls, data: bytes) -> Tuple['TransferHeader', int]:
        """
        Parse the stream layout out of an in-memory buffer.

        Returns:
            (header, offset) where offset is the first payload byte
        """
        if len(data) < LENGTH_PREFIX_SIZE:
            raise MalformedHeaderError(
                f"truncated header: {len(data)} bytes, need {LENGTH_PREFIX_SIZE}"
            )

        length = struct.unpack('>I', data[:LENGTH_PREFIX_SIZE])[0]
        if length > MAX_FILENAME_LENGTH:
            raise MalformedHeaderError(f"filename length too large: {length}")

        needed = LENGTH_PREFIX_SIZE + length + FIXED_FIELDS_SIZE
        if len(data) < needed:
            raise MalformedHeaderError(
                f"truncated header: {len(data)} bytes, need {needed}"
            )

        offset = LENGTH_PREFIX_SIZE
        fields = []
        for width in (length, DIGEST_HEX_LENGTH, SALT_HEX_LENGTH, NONCE_HEX_LENGTH,
                      KEY_CIPHERTEXT_HEX_LENGTH, ENVELOPE_KEY_LENGTH):
            fields.append(bytes(data[offset:offset + width]))
            offset += width

        filename = _decode_filename(fields[0])
        header = cls._from_fields(filename, *fields[1:])
        return header, offset

    @classmethod
    def _from_fields(cls, filename: str, digest: bytes, salt: bytes, nonce: bytes,
                     ciphertext: bytes, envelope_key: bytes) -> 'TransferHeader':
        try:
            key = envelope_key.decode('utf-8')
        except UnicodeDecodeError:
            raise MalformedHeaderError("envelope_key: not UTF-8") from None

        header = cls(
            filename=filename,
            digest=_decode_ascii('digest', digest),
            salt=_decode_ascii('salt', salt),
            nonce=_decode_ascii('nonce', nonce),
            ciphertext=_decode_ascii('ciphertext', ciphertext),
            envelope_key=key,
        )
        header.validate()
        return header

    # === Message transport ===

    def to_dict(self) -> Dict[str, str]:
        """Header frame fields for the message transport."""
        return {
            'filename': self.filename,
            'sha256': self.digest,
            'salt': self.salt,
            'nonce': self.nonce,
            'ct': self.ciphertext,
            'password_b': self.envelope_key,
        }

    def to_json(self) -> str:
        self.validate()
        return json.dumps(self.to_dict())

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'TransferHeader':
        """Build a header from a decoded header frame."""
        if not isinstance(data, dict):
            raise MalformedHeaderError("header frame is not an object")

        values = {}
        for key in ('filename', 'sha256', 'salt', 'nonce', 'ct', 'password_b'):
            value = data.get(key)
            if not isinstance(value, str):
                raise MalformedHeaderError(f"header frame: missing or invalid '{key}'")
            values[key] = value

        header = cls(
            filename=values['filename'],
            digest=values['sha256'],
            salt=values['salt'],
            nonce=values['nonce'],
            ciphertext=values['ct'],
            envelope_key=values['password_b'],
        )
        header.validate()
        return header

    @classmethod
    def from_json(cls, text: str) -> 'TransferHeader':
        try:
            data = json.loads(text)
        except ValueError as e:
            raise MalformedHeaderError(f"header frame is not JSON: {e}") from None
        return cls.from_dict(data)
