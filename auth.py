"""
auth.py
Shared access code: bcrypt hashing, validation, change, first-run seeding.
"""

from __future__ import annotations

import logging

import bcrypt

logger = logging.getLogger(__name__)

ACCESS_CODE_KEY = "access_code"
FORCE_CHANGE_KEY = "force_code_change"


def _to_bcrypt_secret(code: str) -> bytes:
    """
    bcrypt only uses the first 72 BYTES of the secret.
    We truncate to 72 bytes to avoid ValueError and to make behavior explicit.
    """
    secret = code.encode("utf-8")
    if len(secret) > 72:
        secret = secret[:72]
    return secret


def hash_code(code: str) -> str:
    salt = bcrypt.gensalt(rounds=12)
    return bcrypt.hashpw(_to_bcrypt_secret(code), salt).decode("utf-8")


def verify_code(code: str, code_hash: str) -> bool:
    return bcrypt.checkpw(_to_bcrypt_secret(code), code_hash.encode("utf-8"))


async def validate_access_code(gateway, code: str) -> bool:
    """
    True only when a code is stored and matches. A missing row, a malformed
    hash or a store failure all count as a rejection.
    """
    try:
        stored = await gateway.get_config(ACCESS_CODE_KEY)
        if not stored:
            return False
        return verify_code(code, stored)
    except Exception as exc:
        logger.warning("Access code check failed: %s", exc)
        return False


async def set_access_code(gateway, code: str) -> None:
    await gateway.set_config(ACCESS_CODE_KEY, hash_code(code))
    await gateway.set_config(FORCE_CHANGE_KEY, "0")


async def ensure_access_code(gateway, default_code: str) -> None:
    """
    Seed the default code on first run and require it to be changed on first login.
    """
    if await gateway.get_config(ACCESS_CODE_KEY) is None:
        await gateway.set_config(ACCESS_CODE_KEY, hash_code(default_code))
        await gateway.set_config(FORCE_CHANGE_KEY, "1")
        logger.info("Seeded default access code")


async def is_force_code_change(gateway) -> bool:
    return await gateway.get_config(FORCE_CHANGE_KEY) == "1"
