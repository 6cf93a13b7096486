# tests/test_verify.py
from dataclasses import replace

import pytest

from sequencer.clients.signer import Ed25519Signer
from sequencer.core.types import Message
from sequencer.crypto.keys import KeyPair
from sequencer.verify.verifier import MessageVerifier, VerificationResult
from sequencer.core.builder import Builder
from sequencer.clients.wallet import StaticWallet

from conftest import FakeGateway, StepClock, item_bytes


async def create_test_log(keys, n_messages=4, process_id="verify-test-001"):
    builder = Builder(FakeGateway(height=321), StaticWallet(keys), Ed25519Signer(), clock=StepClock())
    messages = []
    for i in range(n_messages):
        result = await builder.build(item_bytes(target=process_id, data=f"Message #{i}"))
        messages.append(Message.from_bundle(result.bundle))
    return messages


@pytest.mark.asyncio
async def test_valid_log(keys):
    messages = await create_test_log(keys, 6)
    verifier = MessageVerifier(Ed25519Signer(), trusted_owners={keys.public_key_b64url()})
    result = verifier.verify("verify-test-001", list(reversed(messages)))
    assert result.is_valid is True
    assert len(result.failures) == 0
    assert str(result) == "Process log is valid ✓"


def test_empty_log():
    result = MessageVerifier(Ed25519Signer()).verify("nothing", [])
    assert result
    assert "Empty" in result.message


@pytest.mark.asyncio
async def test_tamper_payload(keys):
    messages = await create_test_log(keys, 5)
    messages[2] = replace(messages[2], payload="HACKED CONTENT")

    result = MessageVerifier(Ed25519Signer()).verify("verify-test-001", messages)
    assert result.is_valid is False
    assert result.first_failure.index == 2
    assert any("signature" in f.message.lower() for f in result.failures)


@pytest.mark.asyncio
async def test_tamper_bundle_reference(keys):
    messages = await create_test_log(keys, 3)
    messages[1] = replace(messages[1], bundle_reference="A" * 43)

    result = MessageVerifier(Ed25519Signer()).verify("verify-test-001", messages)
    assert not result
    assert [f.category for f in result.failures] == ["identity"]


@pytest.mark.asyncio
async def test_tamper_sequence_key(keys):
    messages = await create_test_log(keys, 3)
    messages[2] = replace(messages[2], sequence_key="999999999999.9999999999999")

    result = MessageVerifier(Ed25519Signer()).verify("verify-test-001", messages)
    assert not result
    assert any(f.category == "order" for f in result.failures)


@pytest.mark.asyncio
async def test_foreign_process(keys):
    messages = await create_test_log(keys, 2)
    messages += await create_test_log(keys, 1, process_id="other-process")

    result = MessageVerifier(Ed25519Signer()).verify("verify-test-001", messages)
    assert not result
    assert any(f.category == "process" for f in result.failures)


@pytest.mark.asyncio
async def test_untrusted_owner(keys):
    messages = await create_test_log(keys, 2)
    stranger = KeyPair.generate().public_key_b64url()

    result = MessageVerifier(Ed25519Signer(), trusted_owners={stranger}).verify("verify-test-001", messages)
    assert not result
    assert len([f for f in result.failures if "not trusted" in f.message]) == 2


@pytest.mark.asyncio
async def test_verify_from_storage(keys, storage):
    for msg in await create_test_log(keys, 3):
        storage.save_message(msg)

    result = MessageVerifier(Ed25519Signer()).verify_from_storage("verify-test-001", storage)
    assert result.is_valid


def test_verify_from_closed_storage(storage):
    storage.close()
    result = MessageVerifier(Ed25519Signer()).verify_from_storage("verify-test-001", storage)
    assert isinstance(result, VerificationResult)
    assert result.is_valid is False
    assert result.first_failure.category == "storage"
    assert "closed" in result.message
