"""
Object encryption for stored artifacts.

Artifacts are JSON objects sealed to the recipient's Curve25519 public key
(libsodium sealed boxes). Only the holder of the matching private key can
open them; the sender stays anonymous at the crypto layer.
"""

import base64
import json
from typing import Any, Protocol

from nacl.encoding import HexEncoder
from nacl.exceptions import CryptoError
from nacl.public import PrivateKey, PublicKey, SealedBox

from deaddrop.errors import DecryptionError, ValidationError

SCHEME = "nacl-sealedbox"


class CryptoCodec(Protocol):
    def encrypt(self, public_key: str, obj: Any) -> dict[str, Any]: ...

    def decrypt(self, private_key: str, envelope: dict[str, Any]) -> Any: ...

    def is_encrypted(self, obj: Any) -> bool: ...


class SealedBoxCodec:
    """Envelope: {"scheme": "nacl-sealedbox", "cipherText": <base64>}. Keys are hex."""

    @staticmethod
    def generate_keypair() -> tuple[str, str]:
        """Return (private_key_hex, public_key_hex)."""
        private = PrivateKey.generate()
        return (
            private.encode(encoder=HexEncoder).decode("ascii"),
            private.public_key.encode(encoder=HexEncoder).decode("ascii"),
        )

    @staticmethod
    def public_key_for(private_key: str) -> str:
        private = PrivateKey(private_key.encode("ascii"), encoder=HexEncoder)
        return private.public_key.encode(encoder=HexEncoder).decode("ascii")

    def encrypt(self, public_key: str, obj: Any) -> dict[str, Any]:
        try:
            recipient = PublicKey(public_key.encode("ascii"), encoder=HexEncoder)
        except (TypeError, ValueError) as e:
            raise ValidationError(f"Invalid public key: {e}", code="invalid_key")
        plaintext = json.dumps(obj, separators=(",", ":")).encode("utf-8")
        cipher_text = SealedBox(recipient).encrypt(plaintext)
        return {"scheme": SCHEME, "cipherText": base64.b64encode(cipher_text).decode("ascii")}

    def decrypt(self, private_key: str, envelope: dict[str, Any]) -> Any:
        if not self.is_encrypted(envelope):
            raise DecryptionError("Object is not a sealed envelope")
        try:
            recipient = PrivateKey(private_key.encode("ascii"), encoder=HexEncoder)
            cipher_text = base64.b64decode(envelope["cipherText"], validate=True)
            plaintext = SealedBox(recipient).decrypt(cipher_text)
            return json.loads(plaintext.decode("utf-8"))
        except (CryptoError, TypeError, ValueError) as e:
            raise DecryptionError(f"Unable to open envelope: {e}")

    def is_encrypted(self, obj: Any) -> bool:
        return (
            isinstance(obj, dict)
            and obj.get("scheme") == SCHEME
            and isinstance(obj.get("cipherText"), str)
        )
