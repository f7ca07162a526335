"""Tests for access code handling."""

import pytest

import auth
from fakes import FakeGateway


@pytest.fixture
def gw():
    return FakeGateway()


class TestHashing:
    def test_hash_and_verify(self):
        h = auth.hash_code("secret-code")
        assert h != "secret-code"
        assert auth.verify_code("secret-code", h)
        assert not auth.verify_code("wrong", h)

    def test_long_codes_are_truncated_consistently(self):
        base = "x" * 72
        h = auth.hash_code(base + "tail-one")
        assert auth.verify_code(base + "tail-two", h)


class TestValidate:
    @pytest.mark.asyncio
    async def test_valid_and_invalid(self, gw):
        await auth.set_access_code(gw, "open-sesame")
        assert await auth.validate_access_code(gw, "open-sesame")
        assert not await auth.validate_access_code(gw, "open")

    @pytest.mark.asyncio
    async def test_no_code_stored(self, gw):
        assert not await auth.validate_access_code(gw, "anything")

    @pytest.mark.asyncio
    async def test_transport_error_is_false(self, gw):
        await auth.set_access_code(gw, "open-sesame")
        gw.fail_fetch = True
        assert not await auth.validate_access_code(gw, "open-sesame")

    @pytest.mark.asyncio
    async def test_plaintext_value_is_rejected(self, gw):
        gw.config[auth.ACCESS_CODE_KEY] = "open-sesame"
        assert not await auth.validate_access_code(gw, "open-sesame")


class TestFirstRun:
    @pytest.mark.asyncio
    async def test_ensure_seeds_once_and_forces_change(self, gw):
        await auth.ensure_access_code(gw, "admin123")
        assert await auth.validate_access_code(gw, "admin123")
        assert await auth.is_force_code_change(gw)

        await auth.set_access_code(gw, "new-code-1")
        assert not await auth.is_force_code_change(gw)

        await auth.ensure_access_code(gw, "admin123")
        assert not await auth.validate_access_code(gw, "admin123")
        assert await auth.validate_access_code(gw, "new-code-1")
