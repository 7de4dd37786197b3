import json
import sys
from pathlib import Path
from typing import Optional, Tuple

import click
import structlog

from . import __version__
from .config import (
    CcEnvironment,
    ConfigStore,
    EnvironmentKind,
    JavaEnvironment,
    LlmEnvironment,
    build_environment,
)
from .env import LLM_DEFAULT_BASE_URLS
from .errors import EnvSwitchError, InvalidArgument
from .logging import configure_logging
from .scanner import JavaScanner
from .scripts import ShellTarget, detect_shell, parse_shell
from .shell_integration import ShellIntegration, get_hook_code
from .switch import EnvironmentSwitch, SwitchStatus
from .utils import (
    error_message,
    format_table,
    info_message,
    mask_sensitive_value,
    normalize_url,
    success_message,
    warning_message,
)

logger = structlog.get_logger(__name__)


# Windows GBK终端兼容性：安全输出Unicode字符
def safe_echo(message, **kwargs):
    """在Windows GBK终端下安全输出Unicode字符"""
    try:
        click.echo(message, **kwargs)
    except UnicodeEncodeError:
        safe_message = message.replace('✓', '[OK]').replace('✗', '[X]').replace('⚠', '[WARN]').replace('ℹ', '[i]')
        click.echo(safe_message, **kwargs)


def notify(message: str):
    """提示信息一律输出到 stderr，stdout 只留给脚本和查询结果"""
    safe_echo(message, err=True)


def fail(e: Exception):
    logger.debug("command failed", error_type=type(e).__name__)
    click.echo(f"Error: {e}", err=True)
    sys.exit(1)


def _resolve_shell(shell: Optional[str]) -> ShellTarget:
    if shell:
        return parse_shell(shell)
    return detect_shell()


shell_option = click.option('--shell', '-s', 'shell', help='目标 shell: bash, zsh, fish, powershell, cmd（默认自动检测）')
json_option = click.option('--json', 'as_json', is_flag=True, help='以 JSON 格式输出')


@click.group()
@click.version_option(version=__version__, prog_name="envswitch")
@click.option('--verbose', '-v', is_flag=True, help='输出调试日志')
@click.option('--log-json', is_flag=True, help='日志使用 JSON 格式')
def cli(verbose: bool, log_json: bool):
    """envswitch - Java / Claude Code / LLM 环境切换工具

    \b
    常用命令:
      - <java|cc|llm> add/list/remove: 管理环境
      - <java|cc|llm> use NAME: 仅在当前 shell 中切换
      - <java|cc> default NAME: 设置新 shell 的默认环境
      - install: 安装 shell 集成
    """
    configure_logging(verbose=verbose, log_json=log_json)


# ---------------------------------------------------------------------------
# 各类环境共用的实现
# ---------------------------------------------------------------------------

def _add_impl(environment, make_default: bool):
    switch = EnvironmentSwitch()
    switch.add(environment, make_default=make_default)

    label = environment.kind.label
    notify(success_message(f"{label} environment '{environment.name}' added"))
    if make_default:
        notify(f"  Set as default {label} environment")


def _remove_impl(kind: EnvironmentKind, names: Tuple[str, ...]):
    switch = EnvironmentSwitch()
    for name in names:
        default_cleared = switch.remove(kind, name)
        notify(success_message(f"{kind.label} environment '{name}' removed"))
        if default_cleared:
            notify(warning_message(f"'{name}' was the default {kind.label} environment, default cleared"))


def _echo_json(data):
    click.echo(json.dumps(data, indent=2, ensure_ascii=False))


def _use_impl(kind: EnvironmentKind, name: str, shell: Optional[str], as_json: bool = False):
    target = _resolve_shell(shell)
    script = EnvironmentSwitch().use(kind, name, target)

    if as_json:
        _echo_json({
            "kind": kind.value,
            "name": name,
            "shell": target.value,
            "script": script.text,
            "warnings": [str(w) for w in script.warnings],
        })
        return

    click.echo(script.text, nl=False)
    if sys.stdout.isatty():
        notify(info_message(
            f"Run 'eval \"$(envswitch {kind.value} use {name})\"' or install the shell hook "
            "with 'envswitch install' to apply these variables"
        ))


def _current_impl(kind: EnvironmentKind, as_json: bool = False):
    state = EnvironmentSwitch().current(kind)

    if as_json:
        _echo_json({"kind": kind.value, "status": state.status.value, "name": state.name})
        return

    if state.status is SwitchStatus.NO_ENVIRONMENT:
        click.echo(f"No {kind.label} environment active")
        return

    scope = "default" if state.status is SwitchStatus.DEFAULT_ACTIVE else "session"
    click.echo(f"{state.name} ({scope})")


def _default_impl(kind: EnvironmentKind, name: Optional[str], unset: bool):
    switch = EnvironmentSwitch()

    if unset:
        if name:
            raise InvalidArgument("NAME cannot be combined with --unset")
        switch.unset_default(kind)
        notify(success_message(f"Default {kind.label} environment cleared"))
        return

    if name:
        switch.set_default(kind, name)
        notify(success_message(f"Default {kind.label} environment set to '{name}'"))
        notify("  New shells with the envswitch hook will use it")
        return

    state = switch.get_default(kind)
    if state.status is SwitchStatus.NO_ENVIRONMENT:
        click.echo(f"No default {kind.label} environment")
    else:
        click.echo(state.name)


def _list_impl(kind: EnvironmentKind, headers, row_builder, as_json: bool = False):
    listed = EnvironmentSwitch().list(kind)

    if as_json:
        rows = []
        for environment, is_default in listed:
            data = environment.model_dump()
            if "api_key" in data:
                data["api_key"] = mask_sensitive_value(data["api_key"])
            if kind.supports_default:
                data["is_default"] = is_default
            rows.append(data)
        _echo_json(rows)
        return

    if not listed:
        notify(f"No {kind.label} environments found. Use 'envswitch {kind.value} add' to create one.")
        return

    rows = []
    for environment, is_default in listed:
        marker = "*" if is_default else ""
        rows.append([marker, environment.name] + row_builder(environment))

    click.echo(format_table(["", "Name"] + headers, rows, min_width=1))


# ---------------------------------------------------------------------------
# java
# ---------------------------------------------------------------------------

@cli.group()
def java():
    """管理 Java 环境"""
    pass


@java.command('list')
@json_option
def java_list(as_json: bool):
    """列出所有 Java 环境（* 为默认环境）"""
    try:
        _list_impl(
            EnvironmentKind.JAVA,
            ["Java Home", "Source", "Description"],
            lambda env: [env.java_home, env.source, env.description],
            as_json,
        )
    except EnvSwitchError as e:
        fail(e)


@java.command('add')
@click.argument('name')
@click.argument('java_home')
@click.option('--description', default="", help='环境描述')
@click.option('--default', '-d', 'make_default', is_flag=True, help='同时设为默认环境')
def java_add(name: str, java_home: str, description: str, make_default: bool):
    """添加 Java 环境

    示例: envswitch java add jdk-17 /usr/lib/jvm/java-17-openjdk
    """
    try:
        environment = build_environment(JavaEnvironment, name=name, java_home=java_home, description=description)
        _add_impl(environment, make_default)
    except EnvSwitchError as e:
        fail(e)


@java.command('remove')
@click.argument('names', nargs=-1, required=True)
def java_remove(names: tuple):
    """删除一个或多个 Java 环境"""
    try:
        _remove_impl(EnvironmentKind.JAVA, names)
    except EnvSwitchError as e:
        fail(e)


@java.command('scan')
@click.option('--path', '-p', 'paths', multiple=True, type=click.Path(), help='额外的扫描目录（可多次指定）')
@click.option('--no-fingerprint-dedupe', is_flag=True, help='厂商和版本相同的安装不视为重复')
def java_scan(paths: tuple, no_fingerprint_dedupe: bool):
    """扫描本机已安装的 JDK 并加入环境列表"""
    try:
        scanner = JavaScanner(dedupe_by_fingerprint=not no_fingerprint_dedupe)
        outcome = EnvironmentSwitch(scanner=scanner).scan([Path(p) for p in paths])

        for environment in outcome.merge.added:
            notify(success_message(f"Added '{environment.name}': {environment.java_home} ({environment.description})"))

        for skipped in outcome.merge.skipped:
            notify(f"  skipped {skipped.path}: {skipped.reason}")

        for duplicate in outcome.report.duplicates:
            notify(f"  skipped {duplicate.path}: duplicate of {duplicate.kept_path} ({duplicate.reason})")

        if outcome.report.warnings:
            notify(warning_message(f"{len(outcome.report.warnings)} path(s) could not be read"))

        if outcome.merge.added:
            notify(f"Found {len(outcome.report.candidates)} installation(s), added {len(outcome.merge.added)}")
        else:
            notify(f"Found {len(outcome.report.candidates)} installation(s), nothing new to add")

    except EnvSwitchError as e:
        fail(e)


@java.command('use')
@click.argument('name')
@shell_option
@json_option
def java_use(name: str, shell: Optional[str], as_json: bool):
    """在当前 shell 中切换 Java 环境（输出脚本，供 eval 使用）"""
    try:
        _use_impl(EnvironmentKind.JAVA, name, shell, as_json)
    except EnvSwitchError as e:
        fail(e)


@java.command('current')
@json_option
def java_current(as_json: bool):
    """显示当前生效的 Java 环境"""
    try:
        _current_impl(EnvironmentKind.JAVA, as_json)
    except EnvSwitchError as e:
        fail(e)


@java.command('default')
@click.argument('name', required=False)
@click.option('--unset', is_flag=True, help='清除默认环境')
def java_default(name: Optional[str], unset: bool):
    """查看或设置默认 Java 环境"""
    try:
        _default_impl(EnvironmentKind.JAVA, name, unset)
    except EnvSwitchError as e:
        fail(e)


# ---------------------------------------------------------------------------
# cc
# ---------------------------------------------------------------------------

@cli.group()
def cc():
    """管理 Claude Code 环境"""
    pass


@cc.command('list')
@json_option
def cc_list(as_json: bool):
    """列出所有 Claude Code 环境（* 为默认环境）"""
    try:
        _list_impl(
            EnvironmentKind.CC,
            ["Base URL", "Model", "API Key"],
            lambda env: [env.base_url, env.model, mask_sensitive_value(env.api_key)],
            as_json,
        )
    except EnvSwitchError as e:
        fail(e)


@cc.command('add')
@click.argument('name')
@click.option('--base-url', required=True, help='API 地址')
@click.option('--api-key', default="", help='API key，可以写成 ${VAR} 引用环境变量')
@click.option('--model', default="", help='模型名称')
@click.option('--provider', default="anthropic", show_default=True, help='服务商')
@click.option('--description', default="", help='环境描述')
@click.option('--default', '-d', 'make_default', is_flag=True, help='同时设为默认环境')
def cc_add(name: str, base_url: str, api_key: str, model: str, provider: str, description: str,
           make_default: bool):
    """添加 Claude Code 环境

    示例: envswitch cc add glm --base-url https://open.bigmodel.cn/api/anthropic --api-key '${GLM_API_KEY}'
    """
    try:
        environment = build_environment(
            CcEnvironment,
            name=name,
            provider=provider,
            api_key=api_key,
            base_url=normalize_url(base_url),
            model=model,
            description=description,
        )
        _add_impl(environment, make_default)
    except EnvSwitchError as e:
        fail(e)


@cc.command('remove')
@click.argument('names', nargs=-1, required=True)
def cc_remove(names: tuple):
    """删除一个或多个 Claude Code 环境"""
    try:
        _remove_impl(EnvironmentKind.CC, names)
    except EnvSwitchError as e:
        fail(e)


@cc.command('use')
@click.argument('name')
@shell_option
@json_option
def cc_use(name: str, shell: Optional[str], as_json: bool):
    """在当前 shell 中切换 Claude Code 环境（输出脚本，供 eval 使用）"""
    try:
        _use_impl(EnvironmentKind.CC, name, shell, as_json)
    except EnvSwitchError as e:
        fail(e)


@cc.command('current')
@json_option
def cc_current(as_json: bool):
    """显示当前生效的 Claude Code 环境"""
    try:
        _current_impl(EnvironmentKind.CC, as_json)
    except EnvSwitchError as e:
        fail(e)


@cc.command('default')
@click.argument('name', required=False)
@click.option('--unset', is_flag=True, help='清除默认环境')
def cc_default(name: Optional[str], unset: bool):
    """查看或设置默认 Claude Code 环境"""
    try:
        _default_impl(EnvironmentKind.CC, name, unset)
    except EnvSwitchError as e:
        fail(e)


# ---------------------------------------------------------------------------
# llm
# ---------------------------------------------------------------------------

@cli.group()
def llm():
    """管理 LLM 环境（没有默认环境）"""
    pass


@llm.command('list')
@json_option
def llm_list(as_json: bool):
    """列出所有 LLM 环境"""
    try:
        _list_impl(
            EnvironmentKind.LLM,
            ["Provider", "Model", "Base URL"],
            lambda env: [env.provider, env.model, env.base_url],
            as_json,
        )
    except EnvSwitchError as e:
        fail(e)


@llm.command('add')
@click.argument('name')
@click.option('--provider', required=True, help='服务商: openai, anthropic, azure-openai, google-gemini, cohere, mistral, ollama ...')
@click.option('--api-key', default="", help='API key，可以写成 ${VAR} 引用环境变量')
@click.option('--base-url', default=None, help='API 地址（默认使用服务商的官方地址）')
@click.option('--model', default="", help='模型名称')
@click.option('--temperature', type=float, default=None, help='采样温度')
@click.option('--max-tokens', type=int, default=None, help='最大输出 token 数')
@click.option('--description', default="", help='环境描述')
def llm_add(name: str, provider: str, api_key: str, base_url: Optional[str], model: str,
            temperature: Optional[float], max_tokens: Optional[int], description: str):
    """添加 LLM 环境

    示例: envswitch llm add gpt --provider openai --api-key '${OPENAI_API_KEY}' --model gpt-4o
    """
    try:
        if base_url is None:
            base_url = LLM_DEFAULT_BASE_URLS.get(provider, "")
        environment = build_environment(
            LlmEnvironment,
            name=name,
            provider=provider,
            api_key=api_key,
            base_url=normalize_url(base_url) if base_url else "",
            model=model,
            temperature=temperature,
            max_tokens=max_tokens,
            description=description,
        )
        _add_impl(environment, make_default=False)
    except EnvSwitchError as e:
        fail(e)


@llm.command('remove')
@click.argument('names', nargs=-1, required=True)
def llm_remove(names: tuple):
    """删除一个或多个 LLM 环境"""
    try:
        _remove_impl(EnvironmentKind.LLM, names)
    except EnvSwitchError as e:
        fail(e)


@llm.command('use')
@click.argument('name')
@shell_option
@json_option
def llm_use(name: str, shell: Optional[str], as_json: bool):
    """在当前 shell 中切换 LLM 环境（输出脚本，供 eval 使用）"""
    try:
        _use_impl(EnvironmentKind.LLM, name, shell, as_json)
    except EnvSwitchError as e:
        fail(e)


@llm.command('current')
@json_option
def llm_current(as_json: bool):
    """显示当前 shell 中的 LLM 环境"""
    try:
        _current_impl(EnvironmentKind.LLM, as_json)
    except EnvSwitchError as e:
        fail(e)


# ---------------------------------------------------------------------------
# shell 集成与维护
# ---------------------------------------------------------------------------

@cli.command()
@shell_option
def env(shell: Optional[str]):
    """输出所有默认环境的脚本（shell 启动时由 hook 调用）"""
    try:
        target = _resolve_shell(shell)
        for script in EnvironmentSwitch().default_scripts(target):
            click.echo(script.text, nl=False)
    except EnvSwitchError as e:
        fail(e)


@cli.command()
@shell_option
def hook(shell: Optional[str]):
    """输出 shell 集成代码

    \b
    bash/zsh:    eval "$(envswitch hook --shell bash)"
    fish:        envswitch hook --shell fish | source
    PowerShell:  envswitch hook --shell powershell | Out-String | Invoke-Expression
    """
    try:
        click.echo(get_hook_code(_resolve_shell(shell)))
    except EnvSwitchError as e:
        fail(e)


@cli.command()
@shell_option
@click.option('--force', is_flag=True, help='强制重新安装，即使已经安装')
def install(shell: Optional[str], force: bool):
    """把 shell 集成写入 shell 配置文件（bash/zsh/fish）"""
    try:
        integration = ShellIntegration(_resolve_shell(shell))
        config_path = integration.get_shell_config_path()

        if not integration.install(force=force):
            notify(success_message(f"envswitch shell integration is already installed in {config_path}"))
            notify("  Use --force to reinstall")
            return

        notify(success_message(f"envswitch shell integration installed in {config_path}"))
        notify(f"  Run 'source {config_path}' or restart your terminal to activate it")
    except EnvSwitchError as e:
        fail(e)


@cli.command()
@shell_option
def uninstall(shell: Optional[str]):
    """从 shell 配置文件中移除 shell 集成"""
    try:
        integration = ShellIntegration(_resolve_shell(shell))
        config_path = integration.get_shell_config_path()

        if integration.uninstall():
            notify(success_message(f"envswitch shell integration removed from {config_path}"))
            notify("  Restart your terminal or reload the shell config")
        else:
            notify(f"envswitch shell integration is not installed in {config_path}")
    except EnvSwitchError as e:
        fail(e)


@cli.command()
def sync():
    """升级配置文件格式并补全内置的 Claude Code 环境"""
    try:
        store = ConfigStore()
        result = store.sync()

        if not result.changed:
            notify(success_message(f"{store.path} is up to date"))
            return

        if result.migrated_from is not None:
            notify(success_message(f"Configuration migrated from version {result.migrated_from}"))
        if result.added:
            notify(success_message(f"Added built-in CC environments: {', '.join(result.added)}"))
        notify(f"  Saved {store.path}")
    except EnvSwitchError as e:
        fail(e)


def main():
    """主入口点"""
    try:
        cli()
    except KeyboardInterrupt:
        click.echo(error_message("Operation cancelled by user"), err=True)
        sys.exit(1)


if __name__ == '__main__':
    main()
