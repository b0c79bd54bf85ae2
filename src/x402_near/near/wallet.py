"""NEAR ed25519 key utilities for x402 payments."""

import base58
from solders.keypair import Keypair as SoldersKeypair
from solders.pubkey import Pubkey
from solders.signature import Signature as SoldersSignature

from x402_near.near.actions import KEY_TYPE_ED25519, PublicKey, Signature

ED25519_PREFIX = "ed25519:"


class Keypair:
    """Wrapper around a Solders ed25519 keypair speaking NEAR key formats."""

    def __init__(self, keypair: SoldersKeypair):
        self._keypair = keypair

    @property
    def keypair(self) -> SoldersKeypair:
        """Get the underlying Solders keypair."""
        return self._keypair

    @property
    def public_key(self) -> PublicKey:
        """Get the NEAR public key."""
        return PublicKey(KEY_TYPE_ED25519, bytes(self._keypair.pubkey()))

    @property
    def secret_key(self) -> str:
        """Get the ``ed25519:<base58>`` secret key string."""
        return ED25519_PREFIX + base58.b58encode(bytes(self._keypair)).decode()

    def sign(self, message: bytes) -> Signature:
        """Sign a message (for NEAR, always a sha256 hash)."""
        signature = self._keypair.sign_message(message)
        return Signature(KEY_TYPE_ED25519, bytes(signature))

    def __str__(self) -> str:
        return str(self.public_key)

    def __repr__(self) -> str:
        return f"Keypair({self.public_key})"


def create_keypair_from_secret_key(secret_key: str) -> Keypair:
    """
    Create a Keypair from a NEAR secret key.

    Args:
        secret_key: ``ed25519:<base58>`` encoded 64-byte secret key. The
            ``ed25519:`` prefix is optional.

    Returns:
        Keypair instance

    Example:
        >>> keypair = create_keypair_from_secret_key("ed25519:5RckguVN9vZp8nsKaVz3...")
        >>> print(keypair.public_key)
    """
    encoded = secret_key
    if encoded.startswith(ED25519_PREFIX):
        encoded = encoded[len(ED25519_PREFIX) :]
    elif ":" in encoded:
        raise ValueError(f"Unsupported key type: {encoded.split(':', 1)[0]}")
    try:
        secret_bytes = base58.b58decode(encoded)
        return Keypair(SoldersKeypair.from_bytes(secret_bytes))
    except ValueError as e:
        raise ValueError(f"Invalid ed25519 secret key: {e}") from e


def generate_keypair() -> Keypair:
    """
    Generate a new random keypair.

    Returns:
        Keypair instance
    """
    return Keypair(SoldersKeypair())


def verify_signature(public_key: PublicKey, message: bytes, signature: Signature) -> bool:
    """Check an ed25519 signature. Other curves are reported as invalid."""
    if public_key.key_type != KEY_TYPE_ED25519 or signature.key_type != KEY_TYPE_ED25519:
        return False
    try:
        pubkey = Pubkey.from_bytes(public_key.data)
        solders_signature = SoldersSignature.from_bytes(signature.data)
    except ValueError:
        return False
    return solders_signature.verify(pubkey, message)
