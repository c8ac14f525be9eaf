"""
Preflight checks run by ``ai-gateway-doctor`` before the server starts.

Each check inspects the environment and records errors (the server would
refuse to start or misbehave) and warnings (it starts, but probably not
the way the operator intended). Exit status is 1 when any error is found.
"""

from __future__ import annotations

import os
import socket
import sys
from dataclasses import dataclass, field
from typing import Callable, List, Mapping, Optional, Tuple

from pydantic import ValidationError

from .api.models import ProviderRegistrationModel
from .core.config import GatewayConfig, _is_truthy, load_provider_definitions, use_stub_clients
from .core.models import ApiFormat

MIN_PYTHON = (3, 9)
DEFAULT_HOST = "0.0.0.0"
DEFAULT_PORT = "8000"


@dataclass
class DoctorResult:
    ok: bool
    messages: List[str]


@dataclass
class _Findings:
    errors: List[str] = field(default_factory=list)
    warnings: List[str] = field(default_factory=list)

    def render(self) -> DoctorResult:
        if self.errors:
            lines = ["Doctor found configuration issues:"]
            lines += [f"{n}. {text}" for n, text in enumerate(self.errors, 1)]
            lines.append("Fix the items above and rerun `ai-gateway-doctor`.")
        else:
            lines = ["Doctor checks passed."]
        if self.warnings:
            lines.append("Warnings:")
            lines += [f"- {text}" for text in self.warnings]
        return DoctorResult(ok=not self.errors, messages=lines)


Check = Callable[[Mapping[str, str], _Findings], None]


def check_interpreter(env: Mapping[str, str], findings: _Findings) -> None:
    running = sys.version_info[:2]
    if running < MIN_PYTHON:
        findings.errors.append(
            "Running on Python %d.%d; the gateway needs %d.%d or newer." % (running + MIN_PYTHON)
        )


def check_gateway_settings(env: Mapping[str, str], findings: _Findings) -> None:
    """The GATEWAY_* tuning variables parse and validate."""
    try:
        GatewayConfig.from_env(env)
    except ValueError as exc:
        findings.errors.append(f"Invalid gateway configuration: {exc}")


def _validation_message(index: int, exc: ValidationError) -> str:
    problem = exc.errors()[0]
    where = ".".join(str(part) for part in problem.get("loc", ()))
    return f"GATEWAY_PROVIDERS[{index}].{where}: {problem.get('msg')}"


def check_provider_definitions(env: Mapping[str, str], findings: _Findings) -> None:
    """
    Every GATEWAY_PROVIDERS entry registers cleanly.

    With real HTTP clients each provider also needs its API key variable
    set, and Google providers need a model for the endpoint path.
    """
    try:
        definitions = load_provider_definitions(env)
    except ValueError as exc:
        findings.errors.append(str(exc))
        return

    if not definitions:
        findings.warnings.append(
            "GATEWAY_PROVIDERS is empty: the gateway starts with no providers. "
            "Register some with POST /v1/providers."
        )
        return

    stub_clients = use_stub_clients(env)
    ids = set()
    for index, definition in enumerate(definitions):
        try:
            registration = ProviderRegistrationModel.model_validate(definition)
        except ValidationError as exc:
            findings.errors.append(_validation_message(index, exc))
            continue

        if registration.id in ids:
            findings.errors.append(f"GATEWAY_PROVIDERS: duplicate provider id `{registration.id}`.")
        ids.add(registration.id)

        if not stub_clients:
            _check_http_settings(registration, env, findings)


def _check_http_settings(
    registration: ProviderRegistrationModel,
    env: Mapping[str, str],
    findings: _Findings,
) -> None:
    name = registration.id
    if registration.api_format is ApiFormat.GOOGLE and not registration.model:
        findings.errors.append(f"Provider `{name}`: google providers need `model`.")

    key_var = registration.api_key_env
    if not key_var:
        findings.warnings.append(f"Provider `{name}` has no api_key_env; requests go out unauthenticated.")
    elif not env.get(key_var, "").strip():
        findings.errors.append(
            f"Provider `{name}` reads its key from `{key_var}`, which is not set. "
            "Set it or use GATEWAY_USE_STUB_CLIENTS=true."
        )


def _listen_address(env: Mapping[str, str]) -> Tuple[str, str]:
    host = env.get("HOST", "").strip() or DEFAULT_HOST
    port = env.get("PORT", "").strip() or DEFAULT_PORT
    return host, port


def check_listen_address(env: Mapping[str, str], findings: _Findings) -> None:
    """PORT is valid and, unless DOCTOR_CHECK_PORT=false, free to bind."""
    host, raw_port = _listen_address(env)
    if not raw_port.isdigit():
        findings.errors.append(f"PORT must be an integer, got `{raw_port}`.")
        return
    port = int(raw_port)
    if not 0 < port < 65536:
        findings.errors.append(f"PORT must be between 1 and 65535, got `{port}`.")
        return

    if not _is_truthy(env.get("DOCTOR_CHECK_PORT", "true")):
        return

    probe_host = "127.0.0.1" if host in ("0.0.0.0", "localhost") else host
    try:
        with socket.create_server((probe_host, port)):
            pass
    except OSError as exc:
        findings.errors.append(
            f"PORT/HOST conflict: cannot bind {probe_host}:{port} ({exc}). "
            "Pick a free port, e.g. `PORT=8010`."
        )


CHECKS: Tuple[Check, ...] = (
    check_interpreter,
    check_gateway_settings,
    check_provider_definitions,
    check_listen_address,
)


def run_doctor(env: Optional[Mapping[str, str]] = None) -> DoctorResult:
    """Run every check against ``env`` (the process environment by default)."""
    source = os.environ if env is None else env
    findings = _Findings()
    for check in CHECKS:
        check(source, findings)
    return findings.render()


def main() -> int:
    result = run_doctor()
    print("\n".join(result.messages))
    return 0 if result.ok else 1


if __name__ == "__main__":
    sys.exit(main())
