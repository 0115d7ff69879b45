"""
Integrity Verifier

Design Decision: Mismatch Policy
================================

Options Considered:
1. Strict rejection - delete the output on digest mismatch
   - Safe, but throws away data the user may still want

2. Best-effort delivery with reporting
   - Keep the decrypted file, log and report the mismatch

Decision: Best-effort delivery
- AES-GCM already authenticates the payload, so a mismatch here means the
  sender's declared digest disagrees with what it encrypted
- The file is kept and the session is marked unverified

Files are hashed in fixed-size chunks so large files never sit in memory.
"""

import hashlib
from pathlib import Path
from typing import Union

import aiofiles

# 8KB read buffer for hashing
DIGEST_CHUNK_SIZE = 8192


async def digest_file(file_path: Union[str, Path],
                      chunk_size: int = DIGEST_CHUNK_SIZE) -> str:
    """
    Compute the SHA-256 of a file.

    Returns:
        Lowercase hex digest
    """
    hasher = hashlib.sha256()

    async with aiofiles.open(file_path, 'rb') as f:
        while True:
            chunk = await f.read(chunk_size)
            if not chunk:
                break
            hasher.update(chunk)

    return hasher.hexdigest()


def digest_file_sync(file_path: Union[str, Path],
                     chunk_size: int = DIGEST_CHUNK_SIZE) -> str:
    """Compute the SHA-256 of a file (synchronous)."""
    hasher = hashlib.sha256()

    with open(file_path, 'rb') as f:
        while True:
            chunk = f.read(chunk_size)
            if not chunk:
                break
            hasher.update(chunk)

    return hasher.hexdigest()


def digests_match(expected: str, actual: str) -> bool:
    """Compare two hex digests, ignoring case."""
    return expected.strip().lower() == actual.strip().lower()
