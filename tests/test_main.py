"""Tests for the command-line entry point."""

import json

import pytest

import main
from config import get_settings


@pytest.fixture
def env(monkeypatch, backend, token_file):
    monkeypatch.setenv("REFERRAL_API_URL", backend.base_url)
    monkeypatch.setenv("REFERRAL_TOKEN_FILE", str(token_file))
    monkeypatch.setenv("REFERRAL_SESSION_EXPIRED_COOLDOWN", "0")
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()


@pytest.mark.asyncio
async def test_run_prints_json(env, tokens, capsys):
    tokens.set("access-2", "refresh-2")
    assert await main.run("GET", "/users/profile") == 0
    out = json.loads(capsys.readouterr().out)
    assert out["data"]["userId"] == 7


@pytest.mark.asyncio
async def test_run_session_expired_exit_code(env, backend, tokens):
    backend.refresh_mode = "error"
    assert await main.run("GET", "/users/profile") == 1
    assert backend.refresh_calls == 1


@pytest.mark.asyncio
async def test_run_http_error_exit_code(env, tokens):
    assert await main.run("GET", "/missing") == 1


def test_parse_args():
    args = main._parse_args(["post", "/jobs", "--data", '{"a": 1}', "--timeout", "5"])
    assert (args.method, args.endpoint, args.body, args.timeout) == ("post", "/jobs", {"a": 1}, 5.0)


def test_parse_args_without_data():
    assert main._parse_args(["GET", "/users/profile"]).body is None


def test_parse_args_rejects_invalid_json(capsys):
    with pytest.raises(SystemExit) as info:
        main._parse_args(["POST", "/jobs", "--data", "{bad"])
    assert info.value.code == 2
    assert "--data is not valid JSON" in capsys.readouterr().err
