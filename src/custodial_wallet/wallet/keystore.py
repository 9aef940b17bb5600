"""Encrypted key custody using AES-256-GCM.

Bundle layout::

    [<version>$]<iv hex>:<tag hex>:<ciphertext hex>

The optional version prefix is reserved for master-key rotation; bundles
without one belong to the current key.
"""

from __future__ import annotations

import binascii
import secrets

from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives.ciphers.aead import AESGCM

from custodial_wallet.errors import BundleFormatError, KeyIntegrityError

KEY_SIZE = 32
IV_SIZE = 12
TAG_SIZE = 16
DELIMITER = ":"
VERSION_SEPARATOR = "$"
CURRENT_KEY_VERSION = "k1"


class KeyVault:
    """Symmetric encryption of private keys at rest.

    Parameters
    ----------
    master_key:
        The raw 32-byte master key. Held only on this instance.
    """

    def __init__(self, master_key: bytes) -> None:
        if len(master_key) != KEY_SIZE:
            raise ValueError("master key must be 32 bytes")
        self._aead = AESGCM(master_key)

    def __repr__(self) -> str:
        return "KeyVault(<redacted>)"

    def encrypt(self, plaintext: bytes) -> str:
        """Encrypt ``plaintext`` and return the hex bundle."""
        iv = secrets.token_bytes(IV_SIZE)
        sealed = self._aead.encrypt(iv, bytes(plaintext), None)
        ciphertext, tag = sealed[:-TAG_SIZE], sealed[-TAG_SIZE:]
        return DELIMITER.join((iv.hex(), tag.hex(), ciphertext.hex()))

    def decrypt(self, bundle: str) -> bytes:
        """Decrypt a bundle produced by :meth:`encrypt`.

        Raises
        ------
        BundleFormatError
            If the bundle is not three hex segments (after an optional
            known version prefix).
        KeyIntegrityError
            If the authentication tag does not verify.
        """
        iv, tag, ciphertext = _parse_bundle(bundle)
        try:
            return self._aead.decrypt(iv, ciphertext + tag, None)
        except InvalidTag:
            raise KeyIntegrityError(
                "Encrypted key failed authentication (tampered or wrong master key)"
            ) from None


def _parse_bundle(bundle: str) -> tuple[bytes, bytes, bytes]:
    body = bundle
    if VERSION_SEPARATOR in bundle:
        version, body = bundle.split(VERSION_SEPARATOR, 1)
        if version != CURRENT_KEY_VERSION:
            raise BundleFormatError(f"Unsupported key version '{version[:8]}'")

    parts = body.split(DELIMITER)
    if len(parts) != 3:
        raise BundleFormatError(
            f"Invalid encrypted data format: expected 3 segments, got {len(parts)}"
        )
    try:
        iv, tag, ciphertext = (bytes.fromhex(p) for p in parts)
    except (ValueError, binascii.Error):
        raise BundleFormatError("Invalid encrypted data format: segments must be hex") from None

    # GCM accepts 8..128 byte IVs; legacy bundles used 16.
    if not 8 <= len(iv) <= 128 or len(tag) != TAG_SIZE:
        raise BundleFormatError("Invalid encrypted data format: bad IV or tag length")
    return iv, tag, ciphertext
