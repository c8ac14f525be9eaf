"""Tests for preflight doctor checks."""

from __future__ import annotations

import json
import socket

from ai_gateway.doctor import run_doctor


def _env(**overrides: str) -> dict:
    env = {
        "HOST": "127.0.0.1",
        "PORT": "8000",
        "DOCTOR_CHECK_PORT": "false",
    }
    env.update(overrides)
    return env


def test_doctor_passes_in_stub_mode_with_providers() -> None:
    providers = [{"id": "openai-main", "capabilities": ["chat"], "api_key_env": "OPENAI_API_KEY"}]
    result = run_doctor(
        _env(GATEWAY_USE_STUB_CLIENTS="true", GATEWAY_PROVIDERS=json.dumps(providers))
    )
    assert result.ok is True
    assert result.messages == ["Doctor checks passed."]


def test_doctor_warns_on_empty_provider_list() -> None:
    result = run_doctor(_env())
    assert result.ok is True
    assert result.messages[0] == "Doctor checks passed."
    assert "Warnings:" in result.messages
    assert "GATEWAY_PROVIDERS is empty" in "\n".join(result.messages)


def test_doctor_fails_on_invalid_gateway_settings() -> None:
    result = run_doctor(_env(GATEWAY_ROUTING_STRATEGY="random", GATEWAY_RATE_LIMIT="lots"))
    assert result.ok is False
    joined = "\n".join(result.messages)
    assert "GATEWAY_ROUTING_STRATEGY" in joined
    assert result.messages[0] == "Doctor found configuration issues:"


def test_doctor_fails_when_api_key_missing() -> None:
    providers = [{"id": "claude", "api_format": "anthropic", "api_key_env": "ANTHROPIC_API_KEY"}]
    result = run_doctor(_env(GATEWAY_PROVIDERS=json.dumps(providers)))
    assert result.ok is False
    assert "ANTHROPIC_API_KEY" in "\n".join(result.messages)


def test_doctor_accepts_set_api_key() -> None:
    providers = [{"id": "claude", "api_format": "anthropic", "api_key_env": "ANTHROPIC_API_KEY"}]
    result = run_doctor(
        _env(GATEWAY_PROVIDERS=json.dumps(providers), ANTHROPIC_API_KEY="sk-ant-test")
    )
    assert result.ok is True


def test_doctor_flags_provider_definition_errors() -> None:
    providers = [
        {"id": "gemini", "api_format": "google", "api_key_env": "GOOGLE_API_KEY"},
        {"id": "dup", "api_key_env": "KEY"},
        {"id": "dup", "api_key_env": "KEY"},
        {"id": "heavy", "weight": 0},
    ]
    result = run_doctor(
        _env(GATEWAY_PROVIDERS=json.dumps(providers), GOOGLE_API_KEY="g", KEY="k")
    )
    assert result.ok is False
    joined = "\n".join(result.messages)
    assert "google providers need `model`" in joined
    assert "duplicate provider id `dup`" in joined
    assert "GATEWAY_PROVIDERS[3].weight" in joined


def test_doctor_rejects_malformed_provider_json() -> None:
    result = run_doctor(_env(GATEWAY_PROVIDERS="{not json"))
    assert result.ok is False
    assert "not valid JSON" in "\n".join(result.messages)


def test_doctor_rejects_bad_port() -> None:
    result = run_doctor(_env(PORT="eighty"))
    assert result.ok is False
    assert "PORT must be an integer" in "\n".join(result.messages)


def test_doctor_detects_port_in_use() -> None:
    listener = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
    listener.bind(("127.0.0.1", 0))
    listener.listen(1)
    port = listener.getsockname()[1]
    try:
        result = run_doctor(_env(PORT=str(port), DOCTOR_CHECK_PORT="true"))
    finally:
        listener.close()

    assert result.ok is False
    assert "PORT/HOST conflict" in "\n".join(result.messages)
