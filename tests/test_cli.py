import json
from pathlib import Path

import pytest
from typer.testing import CliRunner

from auracle import cli as cli_module
from auracle.config import CustomAgent
from auracle.providers import ProviderCapability

runner = CliRunner()


def _call(tool: str, **parameters: object) -> str:
    return "```json\n" + json.dumps({"tool": tool, "parameters": parameters}) + "\n```\n"


@pytest.fixture
def cli_env(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> Path:
    config_path = tmp_path / "cli" / "config.json"
    monkeypatch.chdir(tmp_path)
    monkeypatch.setenv("AURACLE_CONFIG", str(config_path))
    monkeypatch.setenv("AURACLE_DATA_DIR", str(tmp_path / "cli-home"))
    monkeypatch.setenv("AURACLE_AUTODETECT_MODEL", "false")
    return config_path


def test_config_prints_effective_settings(cli_env: Path) -> None:
    result = runner.invoke(cli_module.app, ["config"])

    assert result.exit_code == 0
    payload = json.loads(result.output)
    assert payload["model"]["provider"] == "ollama"
    assert payload["agent"]["mode"] == "vibe"


def test_mode_persists_valid_value(cli_env: Path) -> None:
    result = runner.invoke(cli_module.app, ["mode", "sdk"])

    assert result.exit_code == 0
    assert "Agent mode set to sdk" in result.output
    assert json.loads(cli_env.read_text(encoding="utf-8"))["agent"]["mode"] == "sdk"


def test_mode_rejects_unknown_value(cli_env: Path) -> None:
    result = runner.invoke(cli_module.app, ["mode", "turbo"])

    assert result.exit_code == 1
    assert "invalid agent mode: turbo" in result.output
    assert not cli_env.exists()


def test_use_rejects_unknown_provider(cli_env: Path) -> None:
    result = runner.invoke(cli_module.app, ["use", "mystery", "model-x"])

    assert result.exit_code == 1
    assert "unknown provider: mystery" in result.output
    assert not cli_env.exists()


def test_run_prints_answer(cli_env: Path, monkeypatch: pytest.MonkeyPatch, make_brain, fake_provider) -> None:
    provider = fake_provider(["All done."])
    brain = make_brain(provider)
    monkeypatch.setattr(cli_module, "_load_brain", lambda *args, **kwargs: brain)

    result = runner.invoke(cli_module.app, ["run", "write a haiku about tests"])

    assert result.exit_code == 0
    assert result.output.strip().endswith("All done.")
    assert provider.closed is True


def test_run_reports_required_approval(cli_env: Path, monkeypatch: pytest.MonkeyPatch, make_brain, fake_provider) -> None:
    brain = make_brain(fake_provider([_call("sys_shell_exec", command="rm", args=["-rf", "build"])]))
    monkeypatch.setattr(cli_module, "_load_brain", lambda *args, **kwargs: brain)

    result = runner.invoke(cli_module.app, ["run", "clean the build directory"])

    assert result.exit_code == 1
    assert "Approval required" in result.output
    assert "--approve sys_shell_exec" in result.output


def test_run_approve_lets_tool_through(cli_env: Path, monkeypatch: pytest.MonkeyPatch, make_brain, fake_provider) -> None:
    brain = make_brain(fake_provider([_call("sys_shell_exec", command="echo", args=["hi"]), "Echoed."]))
    monkeypatch.setattr(cli_module, "_load_brain", lambda *args, **kwargs: brain)

    result = runner.invoke(cli_module.app, ["run", "run echo hi", "--approve", "sys_shell_exec"])

    assert result.exit_code == 0
    assert result.output.strip().endswith("Echoed.")


def test_run_mode_override_is_not_persisted(
    cli_env: Path, monkeypatch: pytest.MonkeyPatch, make_brain, fake_provider, config_manager
) -> None:
    provider = fake_provider(
        ["Handled natively."],
        capabilities=frozenset({ProviderCapability.BASIC_GENERATE, ProviderCapability.TOOL_NATIVE}),
    )
    brain = make_brain(provider)
    monkeypatch.setattr(cli_module, "_load_brain", lambda *args, **kwargs: brain)

    result = runner.invoke(cli_module.app, ["run", "refactor the parser", "--mode", "sdk"])
    brain.register_custom_agent(CustomAgent(name="reviewer"))

    assert result.exit_code == 0
    assert result.output.strip().endswith("Handled natively.")
    assert len(provider.prompts) == 1
    assert brain.config.agent.mode == "vibe"
    assert config_manager.load().agent.mode == "vibe"


def test_run_rejects_unknown_mode(cli_env: Path, monkeypatch: pytest.MonkeyPatch, make_brain, fake_provider) -> None:
    provider = fake_provider()
    brain = make_brain(provider)
    monkeypatch.setattr(cli_module, "_load_brain", lambda *args, **kwargs: brain)

    result = runner.invoke(cli_module.app, ["run", "refactor the parser", "--mode", "turbo"])

    assert result.exit_code == 1
    assert "invalid agent mode: turbo" in result.output
    assert provider.prompts == []


def test_pull_downloads_through_ollama(cli_env: Path, monkeypatch: pytest.MonkeyPatch, make_brain, fake_provider) -> None:
    pulled: list[str] = []

    class PullingProvider(fake_provider):
        async def pull_model(self, name: str) -> None:
            pulled.append(name)

    brain = make_brain(provider_factories={"fake": lambda _s: fake_provider(), "ollama": lambda _s: PullingProvider(name="ollama")})
    monkeypatch.setattr(cli_module, "_load_brain", lambda *args, **kwargs: brain)

    result = runner.invoke(cli_module.app, ["pull", "qwen2.5-coder"])

    assert result.exit_code == 0
    assert "Pulled qwen2.5-coder" in result.output
    assert pulled == ["qwen2.5-coder"]


def test_pull_reports_unsupported_provider(cli_env: Path, monkeypatch: pytest.MonkeyPatch, make_brain, fake_provider) -> None:
    brain = make_brain(provider_factories={"fake": lambda _s: fake_provider(), "ollama": lambda _s: fake_provider(name="ollama")})
    monkeypatch.setattr(cli_module, "_load_brain", lambda *args, **kwargs: brain)

    result = runner.invoke(cli_module.app, ["pull", "qwen2.5-coder"])

    assert result.exit_code == 1
    assert "does not support pulling models" in result.output
