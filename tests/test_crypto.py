"""SealedBoxCodec envelopes."""

import pytest

from deaddrop.crypto import SealedBoxCodec
from deaddrop.errors import DecryptionError, ValidationError


def test_seal_and_open(codec, keys):
    envelope = codec.encrypt(keys["bob"].public, {"userId": "alice", "timestamp": 1})

    assert codec.is_encrypted(envelope)
    assert envelope["scheme"] == "nacl-sealedbox"
    assert codec.decrypt(keys["bob"].private, envelope) == {"userId": "alice", "timestamp": 1}


def test_public_key_for(keys):
    assert SealedBoxCodec.public_key_for(keys["alice"].private) == keys["alice"].public


def test_is_encrypted_rejects_plain_objects(codec):
    assert not codec.is_encrypted({"userId": "alice"})
    assert not codec.is_encrypted(None)
    assert not codec.is_encrypted({"scheme": "nacl-sealedbox"})
    assert not codec.is_encrypted("cipher")


def test_wrong_key_cannot_open(codec, keys):
    envelope = codec.encrypt(keys["bob"].public, {"secret": True})
    with pytest.raises(DecryptionError):
        codec.decrypt(keys["carol"].private, envelope)


def test_corrupt_envelope(codec, keys):
    with pytest.raises(DecryptionError):
        codec.decrypt(keys["bob"].private, {"scheme": "nacl-sealedbox", "cipherText": "not base64!"})
    with pytest.raises(DecryptionError):
        codec.decrypt(keys["bob"].private, {"plain": True})


def test_invalid_public_key(codec):
    with pytest.raises(ValidationError) as exc:
        codec.encrypt("pkA", {"id": 1})
    assert exc.value.code == "invalid_key"
