"""
File Module - Hashing and Output Naming

Digest computation for received files and collision-free output paths.
"""

from .integrity import digest_file, digest_file_sync, digests_match, DIGEST_CHUNK_SIZE
from .naming import resolve_unique_name, sanitize_filename, format_peer, DEFAULT_FILENAME

__all__ = [
    'digest_file',
    'digest_file_sync',
    'digests_match',
    'DIGEST_CHUNK_SIZE',
    'resolve_unique_name',
    'sanitize_filename',
    'format_peer',
    'DEFAULT_FILENAME',
]
