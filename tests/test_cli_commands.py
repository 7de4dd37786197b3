import json

import pytest
import yaml
from click.testing import CliRunner

import envswitch.cli as cli_module
import envswitch.switch as switch_module
from envswitch import __version__
from envswitch.cli import cli

JDK_17_HOME = "/usr/lib/jvm/java-17-openjdk"


@pytest.fixture()
def runner(temp_config_dir):
    return CliRunner()


@pytest.fixture()
def no_default_roots(monkeypatch):
    monkeypatch.setattr(switch_module, "default_scan_roots", lambda *args, **kwargs: [])


def _invoke(runner, args, **kwargs):
    result = runner.invoke(cli, args, **kwargs)
    assert result.exit_code == 0, result.output
    return result


def test_version(runner):
    result = _invoke(runner, ["--version"])
    assert __version__ in result.output


def test_add_and_list_java(runner):
    result = _invoke(runner, ["java", "add", "jdk-17", JDK_17_HOME])
    assert "Java environment 'jdk-17' added" in result.stderr

    result = _invoke(runner, ["java", "list"])
    rows = result.stdout.splitlines()[2:]
    assert len(rows) == 1
    assert "jdk-17" in rows[0]
    assert JDK_17_HOME in rows[0]


def test_list_empty(runner):
    result = _invoke(runner, ["java", "list"])
    assert result.stdout == ""
    assert "No Java environments found" in result.stderr


def test_use_outputs_only_script_on_stdout(runner):
    _invoke(runner, ["java", "add", "jdk-17", JDK_17_HOME])

    result = _invoke(
        runner,
        ["java", "use", "jdk-17", "--shell", "bash"],
        env={"PATH": "/home/u/.jdks/jdk-11/bin:/usr/bin:/bin"},
    )

    lines = result.stdout.splitlines()
    assert lines[0] == f'export JAVA_HOME="{JDK_17_HOME}"'
    assert lines[1] == f'export PATH="{JDK_17_HOME}/bin:/usr/bin:/bin"'
    assert "jdk-11/bin" not in result.stdout
    assert all(line.startswith("export ") for line in lines)


def test_use_missing_environment(runner, temp_config_dir):
    result = runner.invoke(cli, ["java", "use", "jdk-99", "--shell", "bash"])

    assert result.exit_code == 1
    assert "Error: EnvironmentNotFound: Java environment 'jdk-99' not found" in result.stderr
    assert result.stdout == ""
    assert not (temp_config_dir / "config.yaml").exists()


def test_unsupported_shell(runner):
    _invoke(runner, ["java", "add", "jdk-17", JDK_17_HOME])

    result = runner.invoke(cli, ["java", "use", "jdk-17", "--shell", "tcsh"])

    assert result.exit_code == 1
    assert "Error: UnsupportedShell: shell 'tcsh' is not supported" in result.stderr


def test_duplicate_add(runner):
    _invoke(runner, ["java", "add", "jdk-17", JDK_17_HOME])

    result = runner.invoke(cli, ["java", "add", "jdk-17", "/opt/other"])

    assert result.exit_code == 1
    assert "Error: DuplicateName:" in result.stderr


def test_invalid_name(runner):
    result = runner.invoke(cli, ["java", "add", "bad name", JDK_17_HOME])
    assert result.exit_code == 1
    assert "Error: InvalidEnvironment: Invalid environment name 'bad name'" in result.stderr


def test_java_default_lifecycle(runner):
    _invoke(runner, ["java", "add", "jdk-17", JDK_17_HOME])

    _invoke(runner, ["java", "default", "jdk-17"])
    assert _invoke(runner, ["java", "default"]).stdout.strip() == "jdk-17"
    assert _invoke(runner, ["java", "current"]).stdout.strip() == "jdk-17 (default)"

    _invoke(runner, ["java", "default", "--unset"])
    assert _invoke(runner, ["java", "default"]).stdout.strip() == "No default Java environment"
    assert _invoke(runner, ["java", "current"]).stdout.strip() == "No Java environment active"


def test_default_name_and_unset_conflict(runner):
    result = runner.invoke(cli, ["java", "default", "jdk-17", "--unset"])
    assert result.exit_code == 1
    assert "Error: InvalidArgument: NAME cannot be combined with --unset" in result.stderr


def test_remove_default_clears_pointer(runner, temp_config_dir):
    _invoke(runner, ["java", "add", "jdk-17", JDK_17_HOME, "--default"])

    result = _invoke(runner, ["java", "remove", "jdk-17"])

    assert "default cleared" in result.stderr
    document = yaml.safe_load((temp_config_dir / "config.yaml").read_text(encoding="utf-8"))
    assert document["default_java_env"] is None
    assert document["java_environments"] == []


def test_cc_default_survives_restart(runner, monkeypatch):
    monkeypatch.delenv("GLM_API_KEY", raising=False)
    result = _invoke(runner, ["sync"])
    assert "glmcc" in result.stderr

    _invoke(runner, ["cc", "default", "glmcc"])

    # 每次调用都是新进程的语义：重新读取配置
    assert _invoke(CliRunner(), ["cc", "current"]).stdout.strip() == "glmcc (default)"

    result = _invoke(runner, ["env", "--shell", "bash"])
    assert 'export ANTHROPIC_AUTH_TOKEN=""' in result.stdout
    assert 'export ENVSWITCH_SCOPE_CC="default"' in result.stdout
    assert "GLM_API_KEY" not in result.stdout
    assert "GLM_API_KEY" in result.stderr


def test_cc_use_resolves_placeholder(runner):
    _invoke(runner, ["sync"])

    result = _invoke(runner, ["cc", "use", "glmcc", "--shell", "fish"], env={"GLM_API_KEY": "sk-glm"})

    assert "set -gx ANTHROPIC_AUTH_TOKEN 'sk-glm'" in result.stdout
    assert "set -gx ENVSWITCH_SCOPE_CC 'session'" in result.stdout


def test_cc_list_masks_keys(runner):
    _invoke(runner, ["cc", "add", "mine", "--base-url", "https://api.example.com/", "--api-key", "sk-1234567890abcd"])

    result = _invoke(runner, ["cc", "list"])

    assert "sk-1*********abcd" in result.stdout
    assert "https://api.example.com |" in result.stdout
    assert "sk-1234567890abcd" not in result.stdout


def test_llm_add_uses_provider_base_url(runner):
    _invoke(runner, ["llm", "add", "gpt", "--provider", "openai", "--model", "gpt-4o", "--temperature", "0.3"])

    result = _invoke(runner, ["llm", "list"])
    assert "https://api.openai.com/v1" in result.stdout

    result = _invoke(runner, ["llm", "use", "gpt", "--shell", "powershell"])
    assert "$env:OPENAI_MODEL = 'gpt-4o'" in result.stdout
    assert "$env:LLM_TEMPERATURE = '0.3'" in result.stdout


def test_llm_has_no_default_command(runner):
    result = runner.invoke(cli, ["llm", "default", "gpt"])
    assert result.exit_code == 2


def test_scan_reports_added_and_skipped(runner, tmp_path, make_jdk, no_default_roots):
    make_jdk(tmp_path / "a", "temurin-17", version="17.0.9", implementor="Eclipse Adoptium")
    dropped = make_jdk(tmp_path / "b", "jdk17", version="17.0.9", implementor="Eclipse Adoptium")

    result = _invoke(runner, ["java", "scan", "--path", str(tmp_path / "a"), "--path", str(tmp_path / "b")])

    assert "Added 'temurin-17'" in result.stderr
    assert f"skipped {dropped}: duplicate of" in result.stderr
    assert "same vendor and version" in result.stderr

    result = _invoke(runner, ["java", "scan", "--path", str(tmp_path / "a")])
    assert "nothing new to add" in result.stderr


def test_scan_without_fingerprint_dedupe(runner, tmp_path, make_jdk, no_default_roots):
    make_jdk(tmp_path / "a", "temurin-17", version="17.0.9", implementor="Eclipse Adoptium")
    make_jdk(tmp_path / "b", "jdk17", version="17.0.9", implementor="Eclipse Adoptium")

    _invoke(runner, ["java", "scan", "--no-fingerprint-dedupe",
                     "--path", str(tmp_path / "a"), "--path", str(tmp_path / "b")])

    result = _invoke(runner, ["java", "list"])
    assert "temurin-17" in result.stdout
    assert "jdk17" in result.stdout


def test_hook_prints_integration_code(runner):
    result = _invoke(runner, ["hook", "--shell", "fish"])
    assert "function envswitch" in result.stdout


def test_env_without_defaults_is_empty(runner):
    result = _invoke(runner, ["env", "--shell", "bash"])
    assert result.stdout == ""


def test_install_and_uninstall(runner, temp_config_dir):
    from pathlib import Path

    result = _invoke(runner, ["install", "--shell", "zsh"])
    assert "installed" in result.stderr
    zshrc = Path.home() / ".zshrc"
    assert "# >>> envswitch shell integration >>>" in zshrc.read_text(encoding="utf-8")

    result = _invoke(runner, ["install", "--shell", "zsh"])
    assert "already installed" in result.stderr

    _invoke(runner, ["uninstall", "--shell", "zsh"])
    assert "envswitch shell integration" not in zshrc.read_text(encoding="utf-8")


def test_install_unsupported_shell(runner):
    result = runner.invoke(cli, ["install", "--shell", "powershell"])
    assert result.exit_code == 1
    assert "Error: UnsupportedShell:" in result.stderr


def test_sync_is_idempotent(runner):
    _invoke(runner, ["sync"])
    result = _invoke(runner, ["sync"])
    assert "up to date" in result.stderr


def test_corrupt_config_is_reported(runner, temp_config_dir):
    temp_config_dir.mkdir(parents=True, exist_ok=True)
    (temp_config_dir / "config.yaml").write_text("java_environments: [\n", encoding="utf-8")

    result = runner.invoke(cli, ["java", "list"])

    assert result.exit_code == 1
    assert "Error: ConfigParseError:" in result.stderr


def test_verbose_json_logging(runner):
    result = _invoke(runner, ["--verbose", "--log-json", "java", "add", "jdk-17", JDK_17_HOME])
    assert '"event": "environment added"' in result.stderr
    assert "environment added" not in result.stdout


def test_main_handles_keyboard_interrupt(monkeypatch):
    def interrupted():
        raise KeyboardInterrupt

    monkeypatch.setattr(cli_module, "cli", interrupted)

    with pytest.raises(SystemExit) as exc_info:
        cli_module.main()
    assert exc_info.value.code == 1


@pytest.mark.parametrize("args, field", [
    (["--temperature", "50"], "temperature"),
    (["--temperature", "-0.1"], "temperature"),
    (["--max-tokens", "-3"], "max_tokens"),
    (["--max-tokens", "0"], "max_tokens"),
    (["--max-tokens", "50000"], "max_tokens"),
    (["--model", "m" * 101], "model"),
])
def test_llm_add_rejects_out_of_range_parameters(runner, temp_config_dir, args, field):
    result = runner.invoke(cli, ["llm", "add", "gpt", "--provider", "openai"] + args)

    assert result.exit_code == 1
    assert "Error: InvalidEnvironment: Invalid LLM environment 'gpt'" in result.stderr
    assert field in result.stderr
    assert not (temp_config_dir / "config.yaml").exists()


def test_llm_add_unknown_provider_warns(runner):
    result = _invoke(runner, ["llm", "add", "x", "--provider", "acme", "--model", "m"])

    assert "unknown llm provider" in result.stderr
    assert "acme" in result.stderr


def test_invalid_base_url_names_the_kind(runner):
    result = runner.invoke(cli, ["cc", "add", "bad", "--base-url", "ftp://example.com"])
    assert result.exit_code == 1
    assert "Error: InvalidEnvironment: Invalid base URL" in result.stderr


def test_list_json(runner):
    _invoke(runner, ["java", "add", "jdk-17", JDK_17_HOME, "--default"])
    _invoke(runner, ["cc", "add", "mine", "--base-url", "https://api.example.com", "--api-key", "sk-1234567890abcd"])

    rows = json.loads(_invoke(runner, ["java", "list", "--json"]).stdout)
    assert rows == [{
        "name": "jdk-17",
        "java_home": JDK_17_HOME,
        "description": "",
        "source": "manual",
        "is_default": True,
    }]

    rows = json.loads(_invoke(runner, ["cc", "list", "--json"]).stdout)
    assert rows[0]["api_key"] == "sk-1*********abcd"
    assert rows[0]["is_default"] is False


def test_list_json_empty(runner):
    assert json.loads(_invoke(runner, ["llm", "list", "--json"]).stdout) == []


def test_current_json(runner):
    _invoke(runner, ["java", "add", "jdk-17", JDK_17_HOME, "--default"])

    state = json.loads(_invoke(runner, ["java", "current", "--json"]).stdout)
    assert state == {"kind": "java", "status": "DefaultActive", "name": "jdk-17"}

    state = json.loads(_invoke(runner, ["cc", "current", "--json"]).stdout)
    assert state == {"kind": "cc", "status": "NoEnvironment", "name": None}


def test_use_json(runner, monkeypatch):
    monkeypatch.delenv("GLM_API_KEY", raising=False)
    _invoke(runner, ["sync"])

    result = _invoke(runner, ["cc", "use", "glmcc", "--shell", "zsh", "--json"])

    data = json.loads(result.stdout)
    assert data["kind"] == "cc"
    assert data["name"] == "glmcc"
    assert data["shell"] == "zsh"
    assert 'export ENVSWITCH_CURRENT_CC="glmcc"' in data["script"]
    assert len(data["warnings"]) == 1
    assert "UnresolvedPlaceholder" in data["warnings"][0]


def test_log_level_from_environment(runner):
    result = _invoke(runner, ["java", "add", "jdk-17", JDK_17_HOME], env={"ENVSWITCH_LOG_LEVEL": "info"})
    assert "environment added" in result.stderr
    assert "environment added" not in result.stdout

    result = _invoke(runner, ["java", "remove", "jdk-17"])
    assert "environment removed" not in result.stderr
