"""
Output protection for the Device Discovery Module.

Wraps the probing document in authenticated encryption (Fernet: AES-128-CBC
with HMAC-SHA256). The persisted form is "<SCHEME>$<payload>" so a reader
can pick the right decryption path:

- FERNET: payload is a Fernet token made with a key file
- FERNET-PBKDF2: payload is "<base64 salt>.<Fernet token>", the key being
  derived from a passphrase with PBKDF2-HMAC-SHA256
"""

import base64
import os
from pathlib import Path
from typing import Optional

from cryptography.fernet import Fernet, InvalidToken
from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.kdf.pbkdf2 import PBKDF2HMAC

from .error_handler import OutputProtectionError

SCHEME_SEPARATOR = "$"

# PBKDF2 iterations - OWASP 2023 guidance for PBKDF2-HMAC-SHA256 is 600,000
PBKDF2_ITERATIONS = 480_000

SALT_SIZE = 16


class OutputProtector:
    """Base class for protection schemes."""

    scheme = ""

    def protect(self, data: bytes) -> str:
        """Encrypt data and return the tagged persisted form."""
        return f"{self.scheme}{SCHEME_SEPARATOR}{self._encrypt(data)}"

    def unprotect(self, payload: str) -> bytes:
        """Decrypt a payload (without its scheme tag)."""
        raise NotImplementedError

    def _encrypt(self, data: bytes) -> str:
        raise NotImplementedError


class FernetProtector(OutputProtector):
    """Encryption with a Fernet key read from a key file."""

    scheme = "FERNET"

    def __init__(self, key: bytes):
        try:
            self._fernet = Fernet(key)
        except (ValueError, TypeError) as e:
            raise OutputProtectionError(f"Invalid Fernet key: {e}") from e

    @classmethod
    def from_key_file(cls, path: str) -> "FernetProtector":
        key_path = Path(path)
        try:
            key = key_path.read_bytes().strip()
        except OSError as e:
            raise OutputProtectionError(f"Cannot read key file {key_path}: {e}") from e
        return cls(key)

    def _encrypt(self, data: bytes) -> str:
        return self._fernet.encrypt(data).decode("ascii")

    def unprotect(self, payload: str) -> bytes:
        try:
            return self._fernet.decrypt(payload.encode("ascii"))
        except (InvalidToken, ValueError) as e:
            raise OutputProtectionError("Decryption failed: wrong key or corrupted data") from e


class PassphraseProtector(OutputProtector):
    """Encryption with a key derived from a passphrase and a random salt."""

    scheme = "FERNET-PBKDF2"

    def __init__(self, passphrase: str, iterations: int = PBKDF2_ITERATIONS):
        if not passphrase:
            raise OutputProtectionError("Passphrase must not be empty")
        self._passphrase = passphrase.encode("utf-8")
        self.iterations = iterations

    def _derive(self, salt: bytes) -> Fernet:
        kdf = PBKDF2HMAC(
            algorithm=hashes.SHA256(),
            length=32,
            salt=salt,
            iterations=self.iterations,
        )
        return Fernet(base64.urlsafe_b64encode(kdf.derive(self._passphrase)))

    def _encrypt(self, data: bytes) -> str:
        salt = os.urandom(SALT_SIZE)
        token = self._derive(salt).encrypt(data).decode("ascii")
        return f"{base64.urlsafe_b64encode(salt).decode('ascii')}.{token}"

    def unprotect(self, payload: str) -> bytes:
        try:
            salt_text, token = payload.split(".", 1)
            salt = base64.urlsafe_b64decode(salt_text.encode("ascii"))
            return self._derive(salt).decrypt(token.encode("ascii"))
        except (InvalidToken, ValueError) as e:
            raise OutputProtectionError("Decryption failed: wrong passphrase or corrupted data") from e


def split_scheme(document: str):
    """
    Split a persisted document into (scheme, payload).

    Raises:
        OutputProtectionError: If the document carries no scheme tag
    """
    scheme, separator, payload = document.strip().partition(SCHEME_SEPARATOR)
    if not separator or not scheme:
        raise OutputProtectionError("Document carries no protection scheme tag")
    return scheme, payload


def unprotect_document(
    document: str,
    key: Optional[bytes] = None,
    passphrase: Optional[str] = None,
) -> bytes:
    """
    Decrypt a persisted document, selecting the scheme from its tag.

    Raises:
        OutputProtectionError: If the scheme is unknown, its secret missing or
            decryption fails
    """
    scheme, payload = split_scheme(document)

    if scheme == FernetProtector.scheme:
        if key is None:
            raise OutputProtectionError("Document is protected with a key file; no key given")
        return FernetProtector(key).unprotect(payload)

    if scheme == PassphraseProtector.scheme:
        if passphrase is None:
            raise OutputProtectionError("Document is protected with a passphrase; none given")
        return PassphraseProtector(passphrase).unprotect(payload)

    raise OutputProtectionError(f"Unknown protection scheme: {scheme}")


def generate_key_file(path: str) -> str:
    """
    Write a new Fernet key to path, readable by the owner only.

    Raises:
        OutputProtectionError: If the file already exists or cannot be written
    """
    key_path = Path(path)
    if key_path.exists():
        raise OutputProtectionError(f"Refusing to overwrite existing key file {key_path}")
    try:
        key_path.parent.mkdir(parents=True, exist_ok=True)
        key_path.write_bytes(Fernet.generate_key())
        os.chmod(key_path, 0o600)
    except OSError as e:
        raise OutputProtectionError(f"Cannot write key file {key_path}: {e}") from e
    return str(key_path)
