from __future__ import annotations

import os

import pytest

from ansync.config import (
    ConfigurationError,
    MissingConfigurationError,
    get_reconcile_config,
    require_env_var,
    require_env_vars,
)
from ansync.config.env import optional_float
from ansync.config.reconcile import DEFAULT_CYCLE_TIMEOUT_SECONDS


def test_require_env_vars_returns_values(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("EXAMPLE_VAR", "value")

    result = require_env_vars(["EXAMPLE_VAR"])

    assert result["EXAMPLE_VAR"] == "value"


def test_require_env_vars_raises_when_any_missing(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.delenv("MISSING_VAR", raising=False)
    monkeypatch.delenv("OTHER_MISSING_VAR", raising=False)

    with pytest.raises(MissingConfigurationError) as exc:
        require_env_vars(["OTHER_MISSING_VAR", "MISSING_VAR"])

    assert "MISSING_VAR, OTHER_MISSING_VAR" in str(exc.value)


def test_require_env_var_handles_blank_values(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("EXAMPLE_VAR", "   ")

    with pytest.raises(MissingConfigurationError):
        require_env_var("EXAMPLE_VAR")


def test_require_env_vars_restores_environment(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("TEMP_VAR", "123")

    assert os.getenv("TEMP_VAR") == "123"
    result = require_env_var("TEMP_VAR")
    assert result == "123"


def test_optional_float_parses_or_defaults(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.delenv("EXAMPLE_FLOAT", raising=False)
    assert optional_float("EXAMPLE_FLOAT", 1.5) == 1.5

    monkeypatch.setenv("EXAMPLE_FLOAT", "0.25")
    assert optional_float("EXAMPLE_FLOAT", 1.5) == 0.25


def test_optional_float_rejects_garbage(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("EXAMPLE_FLOAT", "soon")

    with pytest.raises(ConfigurationError, match="EXAMPLE_FLOAT"):
        optional_float("EXAMPLE_FLOAT", None)


def test_reconcile_config_defaults(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.delenv("ANSYNC_CYCLE_TIMEOUT", raising=False)
    monkeypatch.setenv("ANSYNC_SIGNER_FACTORY", "  ")

    config = get_reconcile_config()

    assert config.cycle_timeout == DEFAULT_CYCLE_TIMEOUT_SECONDS
    assert config.signer_factory is None


def test_reconcile_config_reads_environment(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("ANSYNC_CYCLE_TIMEOUT", "120")
    monkeypatch.setenv("ANSYNC_SIGNER_FACTORY", " signing.kms:factory ")

    config = get_reconcile_config()

    assert config.cycle_timeout == 120.0
    assert config.signer_factory == "signing.kms:factory"
