"""
Crypto Module - Envelope Encryption

Key derivation and AES-256-GCM encryption of file content and file keys.
"""

from .envelope import (
    generate_secret,
    derive_key,
    encrypt,
    decrypt,
    encrypt_file,
    decrypt_file,
    remove_quietly,
    PBKDF2_ITERATIONS,
    SALT_LENGTH,
    NONCE_LENGTH,
    SECRET_LENGTH,
)

__all__ = [
    'generate_secret',
    'derive_key',
    'encrypt',
    'decrypt',
    'encrypt_file',
    'decrypt_file',
    'remove_quietly',
    'PBKDF2_ITERATIONS',
    'SALT_LENGTH',
    'NONCE_LENGTH',
    'SECRET_LENGTH',
]
