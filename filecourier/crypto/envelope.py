"""
Envelope Encryption

Design Decision: Two-Tier Keys
==============================

Options Considered:
1. Encrypt the file directly under one shared secret
   - Simple, but the secret has to travel with every transfer

2. Envelope encryption (file key wrapped by a second key)
   - The large payload is encrypted once under the file key
   - Only a small wrapped-key blob rides in the header
   - The wrapping key can later be replaced by a real key exchange

Decision: Envelope encryption with password-style secrets
- FileKey: 16 random alphanumeric characters, encrypts the file
- EnvelopeKey: 16 random alphanumeric characters, encrypts the FileKey
- Both are stretched with PBKDF2-HMAC-SHA256 (100,000 iterations)
- AES-256-GCM for both layers (authenticated, fails closed)

Note: the EnvelopeKey is currently sent in cleartext next to the wrapped
FileKey, so the scheme only protects against passive corruption, not against
an eavesdropper.

Artifact Format:
```
+-------------+--------------+------------------------------+
| Salt (16B)  | Nonce (12B)  | Ciphertext + GCM tag (16B)   |
+-------------+--------------+------------------------------+
```
"""

import os
import secrets
import string
import logging
import tempfile
from pathlib import Path
from typing import Optional, Tuple, Union

from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.ciphers.aead import AESGCM
from cryptography.hazmat.primitives.kdf.pbkdf2 import PBKDF2HMAC

from ..errors import ArtifactFormatError, DecryptionError

logger = logging.getLogger(__name__)

PBKDF2_ITERATIONS = 100_000
SALT_LENGTH = 16
NONCE_LENGTH = 12
KEY_LENGTH = 32  # AES-256
TAG_LENGTH = 16
SECRET_LENGTH = 16

SECRET_ALPHABET = string.ascii_letters + string.digits

PathLike = Union[str, Path]


def generate_secret(length: int = SECRET_LENGTH) -> str:
    """Generate a random alphanumeric secret."""
    return ''.join(secrets.choice(SECRET_ALPHABET) for _ in range(length))


def derive_key(secret: str, salt: bytes) -> bytes:
    """Derive a 32-byte AES key from a secret with PBKDF2-HMAC-SHA256."""
    kdf = PBKDF2HMAC(
        algorithm=hashes.SHA256(),
        length=KEY_LENGTH,
        salt=salt,
        iterations=PBKDF2_ITERATIONS,
    )
    return kdf.derive(secret.encode('utf-8'))


def encrypt(secret: str, plaintext: bytes) -> Tuple[str, str, str]:
    """
    Encrypt a small blob under a secret.

    Returns:
        (salt_hex, nonce_hex, ciphertext_hex); the ciphertext carries the tag
    """
    salt = os.urandom(SALT_LENGTH)
    nonce = os.urandom(NONCE_LENGTH)
    key = derive_key(secret, salt)
    ciphertext = AESGCM(key).encrypt(nonce, plaintext, None)
    return salt.hex(), nonce.hex(), ciphertext.hex()


def decrypt(secret: str, salt_hex: str, nonce_hex: str, ciphertext_hex: str) -> bytes:
    """
    Decrypt a blob produced by encrypt().

    Raises:
        DecryptionError: bad tag, malformed hex, or wrong salt/nonce size
    """
    try:
        salt = bytes.fromhex(salt_hex)
        nonce = bytes.fromhex(nonce_hex)
        ciphertext = bytes.fromhex(ciphertext_hex)
    except ValueError as e:
        raise DecryptionError(f"decryption failed: malformed hex ({e})") from e

    if len(salt) != SALT_LENGTH or len(nonce) != NONCE_LENGTH:
        raise DecryptionError("decryption failed: malformed salt or nonce")

    return _open(derive_key(secret, salt), nonce, ciphertext)


def encrypt_file(path: PathLike, secret: str,
                 out_path: Optional[PathLike] = None,
                 temp_dir: Optional[PathLike] = None) -> Path:
    """
    Encrypt a whole file into an artifact.

    Args:
        path: Plaintext file to encrypt
        secret: FileKey the content is encrypted under
        out_path: Where to write the artifact (a temp file if omitted)
        temp_dir: Directory for the temp file when out_path is omitted

    Returns:
        Path to the artifact
    """
    plaintext = Path(path).read_bytes()

    salt = os.urandom(SALT_LENGTH)
    nonce = os.urandom(NONCE_LENGTH)
    key = derive_key(secret, salt)
    ciphertext = AESGCM(key).encrypt(nonce, plaintext, None)

    if out_path is None:
        fd, name = tempfile.mkstemp(suffix='.enc', dir=temp_dir)
        os.close(fd)
        out_path = name
    out_path = Path(out_path)

    try:
        with open(out_path, 'wb') as f:
            f.write(salt)
            f.write(nonce)
            f.write(ciphertext)
    except OSError:
        remove_quietly(out_path)
        raise

    logger.debug(f"Encrypted {path} -> {out_path} ({len(ciphertext)} bytes)")
    return out_path


def decrypt_file(artifact_path: PathLike, secret: str, out_path: PathLike) -> Path:
    """
    Decrypt an artifact and write the plaintext to out_path.

    The output file is only created once authentication has succeeded,
    and it is created exclusively: an existing file is never truncated.

    Raises:
        ArtifactFormatError: artifact shorter than salt + nonce
        DecryptionError: wrong key or corrupted data
        FileExistsError: out_path already exists
        OSError: reading the artifact or writing the output failed
    """
    contents = Path(artifact_path).read_bytes()

    if len(contents) < SALT_LENGTH + NONCE_LENGTH:
        raise ArtifactFormatError(
            f"encrypted artifact too short: {len(contents)} bytes"
        )

    salt = contents[:SALT_LENGTH]
    nonce = contents[SALT_LENGTH:SALT_LENGTH + NONCE_LENGTH]
    ciphertext = contents[SALT_LENGTH + NONCE_LENGTH:]

    plaintext = _open(derive_key(secret, salt), nonce, ciphertext)

    out_path = Path(out_path)
    f = open(out_path, 'xb')
    try:
        with f:
            f.write(plaintext)
    except OSError:
        remove_quietly(out_path)
        raise

    return out_path


def remove_quietly(path: Optional[PathLike]):
    """Delete a file, ignoring any error."""
    if path is None:
        return
    try:
        os.remove(path)
    except OSError:
        pass


def _open(key: bytes, nonce: bytes, ciphertext: bytes) -> bytes:
    try:
        return AESGCM(key).decrypt(nonce, ciphertext, None)
    except InvalidTag as e:
        raise DecryptionError() from e
