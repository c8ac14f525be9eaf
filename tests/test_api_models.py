"""Tests for API request models."""

import pytest
from pydantic import ValidationError

from ai_gateway.api.models import ExecuteRequestModel, ProviderRegistrationModel
from ai_gateway.core.models import ApiFormat

MESSAGES = {"messages": [{"role": "user", "content": "hi"}]}


def test_execute_request_defaults_to_chat_task():
    model = ExecuteRequestModel(caller_identity="team-a", payload=MESSAGES)
    request = model.to_canonical(default_max_attempts=4)

    assert request.task_type == "chat"
    assert request.max_attempts == 4
    assert request.deadline_ms == 0
    assert request.required_capabilities == frozenset()
    assert request.request_id.startswith("req_")


def test_execute_request_explicit_values_win():
    model = ExecuteRequestModel(
        caller_identity="team-a",
        payload=MESSAGES,
        required_capabilities=["chat", "vision"],
        max_attempts=2,
        deadline_ms=1500,
        request_id="req_abc",
    )
    request = model.to_canonical(default_max_attempts=4)

    assert request.max_attempts == 2
    assert request.timeout_ms == 1500
    assert request.required_capabilities == frozenset({"chat", "vision"})
    assert request.request_id == "req_abc"


@pytest.mark.parametrize("overrides", [
    {"caller_identity": ""},
    {"payload": {}},
    {"payload": {"messages": "hi"}},
    {"required_capabilities": [""]},
    {"max_attempts": 21},
    {"unknown": True},
])
def test_execute_request_rejects_invalid_input(overrides):
    data = {"caller_identity": "team-a", "payload": MESSAGES}
    data.update(overrides)
    with pytest.raises(ValidationError):
        ExecuteRequestModel.model_validate(data)


def test_provider_registration_to_provider():
    registration = ProviderRegistrationModel(
        id="claude-main",
        weight=3,
        cost_per_unit=1.5,
        capabilities=["chat", "chat"],
        api_format="anthropic",
        model="claude-3-5-sonnet",
    )
    provider = registration.to_provider()

    assert provider.id == "claude-main"
    assert provider.weight == 3
    assert provider.cost_per_unit == 1.5
    assert provider.capabilities == frozenset({"chat"})
    assert registration.api_format is ApiFormat.ANTHROPIC
    assert provider.api_format is ApiFormat.ANTHROPIC
    assert provider.model == "claude-3-5-sonnet"


@pytest.mark.parametrize("data", [
    {"id": "has space"},
    {"id": ""},
    {"id": "p", "timeout_seconds": 0},
    {"id": "p", "weight": 1001},
    {"id": "p", "api_format": "azure"},
])
def test_provider_registration_rejects_invalid_input(data):
    with pytest.raises(ValidationError):
        ProviderRegistrationModel.model_validate(data)
