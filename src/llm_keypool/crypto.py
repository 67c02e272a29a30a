"""Secret sealing for keys at rest.

AES-256-GCM with the key derived as SHA-256(passphrase). Each seal uses a
fresh 12-byte random nonce, prepended to the ciphertext; the result is
base64 text so it can sit in the store next to plaintext keys.
"""

import base64
import binascii
import hashlib
import os

from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives.ciphers.aead import AESGCM

from llm_keypool.errors import DecryptionFailure, EncryptionFailure

NONCE_SIZE = 12


class KeySealer:
    def __init__(self, passphrase: str):
        if not passphrase:
            raise ValueError("passphrase required for key encryption")
        self._aead = AESGCM(hashlib.sha256(passphrase.encode()).digest())

    def seal(self, plaintext: str) -> str:
        nonce = os.urandom(NONCE_SIZE)
        try:
            data = self._aead.encrypt(nonce, plaintext.encode(), None)
        except (TypeError, ValueError, OverflowError) as e:
            raise EncryptionFailure(f"failed to encrypt key: {e}") from e
        return base64.b64encode(nonce + data).decode()

    def unseal(self, ciphertext: str) -> str:
        try:
            data = base64.b64decode(ciphertext, validate=True)
        except (binascii.Error, ValueError) as e:
            raise DecryptionFailure(f"malformed ciphertext: {e}") from e
        # GCM tag is 16 bytes; anything shorter than nonce + tag is truncated
        if len(data) < NONCE_SIZE + 16:
            raise DecryptionFailure("ciphertext too short")
        nonce, body = data[:NONCE_SIZE], data[NONCE_SIZE:]
        try:
            return self._aead.decrypt(nonce, body, None).decode()
        except (InvalidTag, UnicodeDecodeError) as e:
            raise DecryptionFailure("failed to decrypt key") from e
