"""
Solana legacy transaction encoding for System Program transfers.

Only what a lamport transfer needs: account keys, recent blockhash,
one Transfer instruction, and an ed25519 signature from the payer.
"""

from __future__ import annotations

import base64
import struct
from dataclasses import dataclass
from typing import List

import base58
from nacl.signing import SigningKey

from ..core.recovery.errors import InvalidSignatureError, TransactionRejectedError


SYSTEM_PROGRAM_ID = bytes(32)
SYSTEM_TRANSFER_INSTRUCTION = 2
PUBKEY_LENGTH = 32
KEYPAIR_LENGTH = 64


@dataclass(frozen=True)
class Keypair:
    """Payer keypair decoded from the 64-byte base58 secret."""
    signing_key: SigningKey
    public_key: bytes

    @property
    def address(self) -> str:
        return base58.b58encode(self.public_key).decode()

    def sign(self, message: bytes) -> bytes:
        return self.signing_key.sign(message).signature


def keypair_from_base58(secret: str) -> Keypair:
    """Decode a Solana CLI style keypair: 32-byte seed followed by the public key."""
    try:
        raw = base58.b58decode(secret.strip())
    except ValueError as e:
        raise InvalidSignatureError("buyer keypair is not valid base58") from e

    if len(raw) != KEYPAIR_LENGTH:
        raise InvalidSignatureError(
            f"buyer keypair must decode to {KEYPAIR_LENGTH} bytes, got {len(raw)}"
        )

    signing_key = SigningKey(raw[:32])
    public_key = bytes(signing_key.verify_key)
    if public_key != raw[32:]:
        raise InvalidSignatureError("buyer keypair public half does not match its secret")
    return Keypair(signing_key=signing_key, public_key=public_key)


def decode_pubkey(value: str, what: str = "address") -> bytes:
    try:
        raw = base58.b58decode(value.strip())
    except ValueError as e:
        raise TransactionRejectedError(f"{what} is not valid base58", reason="invalid_pubkey") from e
    if len(raw) != PUBKEY_LENGTH:
        raise TransactionRejectedError(
            f"{what} must decode to {PUBKEY_LENGTH} bytes, got {len(raw)}",
            reason="invalid_pubkey",
        )
    return raw


def encode_length(value: int) -> bytes:
    """Solana compact-u16 length prefix."""
    out = bytearray()
    while True:
        byte = value & 0x7F
        value >>= 7
        if value == 0:
            out.append(byte)
            return bytes(out)
        out.append(byte | 0x80)


def compile_transfer_message(
    payer: bytes,
    payee: bytes,
    lamports: int,
    recent_blockhash: bytes,
) -> bytes:
    """Serialize a legacy message holding a single System Program transfer."""
    if payer == payee:
        account_keys: List[bytes] = [payer, SYSTEM_PROGRAM_ID]
        # header: 1 signer, 0 readonly signed, 1 readonly unsigned (system program)
        header = bytes([1, 0, 1])
        instruction_accounts = bytes([0, 0])
        program_index = 1
    else:
        account_keys = [payer, payee, SYSTEM_PROGRAM_ID]
        header = bytes([1, 0, 1])
        instruction_accounts = bytes([0, 1])
        program_index = 2

    data = struct.pack("<IQ", SYSTEM_TRANSFER_INSTRUCTION, lamports)

    message = bytearray(header)
    message += encode_length(len(account_keys))
    for key in account_keys:
        message += key
    message += recent_blockhash
    message += encode_length(1)
    message.append(program_index)
    message += encode_length(len(instruction_accounts))
    message += instruction_accounts
    message += encode_length(len(data))
    message += data
    return bytes(message)


def build_signed_transfer(
    keypair: Keypair,
    payee: str,
    lamports: int,
    recent_blockhash: str,
) -> tuple[str, str]:
    """
    Build and sign a transfer.

    Returns:
        (signature in base58, wire transaction in base64)
    """
    payee_key = decode_pubkey(payee, "vendor wallet id")
    blockhash = decode_pubkey(recent_blockhash, "recent blockhash")

    message = compile_transfer_message(keypair.public_key, payee_key, lamports, blockhash)
    signature = keypair.sign(message)

    wire = encode_length(1) + signature + message
    return base58.b58encode(signature).decode(), base64.b64encode(wire).decode()
