"""
wallet.py - Keypair loading

ACCEPTS:
- JSON secret file as written by `solana-keygen` (array of 64 ints)
- Base58 secret string decoding to exactly 64 bytes

Never log key bytes or decoded values. Errors name the problem only.
"""

from __future__ import annotations

import json
import os

import base58
from solders.keypair import Keypair

_B58_CHARS = set("123456789ABCDEFGHJKLMNPQRSTUVWXYZabcdefghijkmnopqrstuvwxyz")


def keypair_from_secret_json(path: str) -> Keypair:
    if not os.path.exists(path):
        raise ValueError(f"Keypair file not found: {path}")
    try:
        with open(path, "r", encoding="utf-8") as f:
            data = json.load(f)
    except (OSError, json.JSONDecodeError) as e:
        raise ValueError(f"Keypair file is not valid JSON: {path}") from e

    if not isinstance(data, list) or not all(isinstance(b, int) and 0 <= b < 256 for b in data):
        raise ValueError(f"Keypair file must contain a JSON array of bytes: {path}")
    if len(data) != 64:
        raise ValueError(f"Keypair file holds {len(data)} bytes, expected 64: {path}")
    return Keypair.from_bytes(bytes(data))


def keypair_from_base58(secret: str) -> Keypair:
    if not secret or not isinstance(secret, str):
        raise ValueError("Secret key is empty")
    secret = secret.strip()
    if not all(c in _B58_CHARS for c in secret):
        raise ValueError("Secret key contains invalid characters (must be base58)")
    try:
        key_bytes = base58.b58decode(secret)
    except ValueError as e:
        raise ValueError(f"Failed to decode secret key as base58: {e}") from e
    if len(key_bytes) != 64:
        raise ValueError(f"Secret key decoded to {len(key_bytes)} bytes, expected 64")
    return Keypair.from_bytes(key_bytes)


def load_keypair(source: str) -> Keypair:
    """Load from a file path if one exists, otherwise treat `source` as base58."""
    if os.path.exists(source) or source.endswith(".json"):
        return keypair_from_secret_json(source)
    return keypair_from_base58(source)
