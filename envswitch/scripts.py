"""为不同 shell 生成设置环境变量的脚本

生成的脚本只包含赋值语句，输出到 stdout 后由 shell ``eval``。
相同输入总是得到逐字节相同的输出；警告通过返回值带出，不写进脚本。
"""

import os
import re
from enum import Enum
from typing import Callable, List, Mapping, NamedTuple, Optional, Tuple

import structlog

from .config import Environment, JavaEnvironment
from .env import activation_variables, current_var, scope_var
from .errors import EnvSwitchError, UnsupportedShell

logger = structlog.get_logger(__name__)


class ShellTarget(str, Enum):
    BASH = "bash"
    ZSH = "zsh"
    FISH = "fish"
    POWERSHELL = "powershell"
    CMD = "cmd"


class ScriptMode(str, Enum):
    # persist: 默认环境（hook / env 命令）；session: 仅当前会话（use 命令）
    PERSIST = "persist"
    SESSION = "session"

    @property
    def scope(self) -> str:
        return "default" if self is ScriptMode.PERSIST else "session"


SUPPORTED_SHELLS = [target.value for target in ShellTarget]

_SHELL_ALIASES = {
    "sh": ShellTarget.BASH,
    "pwsh": ShellTarget.POWERSHELL,
    "ps": ShellTarget.POWERSHELL,
    "cmd.exe": ShellTarget.CMD,
}


def parse_shell(name: str) -> ShellTarget:
    key = name.strip().lower()
    if key in _SHELL_ALIASES:
        return _SHELL_ALIASES[key]
    try:
        return ShellTarget(key)
    except ValueError:
        raise UnsupportedShell(name, SUPPORTED_SHELLS) from None


def detect_shell(environ: Optional[Mapping[str, str]] = None) -> ShellTarget:
    """根据环境变量猜测当前 shell，猜不出来时使用 bash"""
    environ = os.environ if environ is None else environ

    shell = os.path.basename(environ.get("SHELL", "")).lower()
    if "zsh" in shell:
        return ShellTarget.ZSH
    elif "fish" in shell:
        return ShellTarget.FISH
    elif "pwsh" in shell or "powershell" in shell:
        return ShellTarget.POWERSHELL
    elif "bash" in shell or shell == "sh":
        return ShellTarget.BASH

    if environ.get("PSModulePath"):
        return ShellTarget.POWERSHELL
    if environ.get("COMSPEC"):
        return ShellTarget.CMD
    return ShellTarget.BASH


def quote_posix(value: str) -> str:
    escaped = re.sub(r'([\\"$`])', r"\\\1", value)
    return f'"{escaped}"'


def quote_fish(value: str) -> str:
    escaped = value.replace("\\", "\\\\").replace("'", "\\'")
    return f"'{escaped}'"


def quote_powershell(value: str) -> str:
    # 弯引号在 PowerShell 中同样是单引号
    return "'" + re.sub(r"(['\u2018\u2019\u201a\u201b])", r"\1\1", value) + "'"


def quote_cmd(value: str) -> str:
    # cmd 无法表示换行
    value = value.replace("\r", "").replace("\n", "")
    value = re.sub(r'([\^&|<>()"])', r"^\1", value)
    return value.replace("%", "%%")


class Dialect(NamedTuple):
    assign: Callable[[str, str], str]
    # None: 跟随本机的 os.pathsep（pwsh 在 Linux/macOS 上使用 ':'）
    path_separator: Optional[str]


SHELL_DIALECTS = {
    ShellTarget.BASH: Dialect(lambda k, v: f"export {k}={quote_posix(v)}", ":"),
    ShellTarget.ZSH: Dialect(lambda k, v: f"export {k}={quote_posix(v)}", ":"),
    ShellTarget.FISH: Dialect(lambda k, v: f"set -gx {k} {quote_fish(v)}", ":"),
    ShellTarget.POWERSHELL: Dialect(lambda k, v: f"$env:{k} = {quote_powershell(v)}", None),
    ShellTarget.CMD: Dialect(lambda k, v: f"set {k}={quote_cmd(v)}", ";"),
}

_JAVA_SEGMENT = re.compile(r"java|jdk", re.IGNORECASE)
_WINDOWS_PATH = re.compile(r"^[A-Za-z]:|\\")


def java_bin_dir(java_home: str) -> str:
    if _WINDOWS_PATH.search(java_home):
        return java_home.rstrip("\\/") + "\\bin"
    return java_home.rstrip("/") + "/bin"


def reconcile_path(path_value: str, java_home: str, separator: str,
                   source_separator: Optional[str] = None) -> str:
    """去掉 PATH 中所有 Java 相关的目录，再把新 JAVA_HOME 的 bin 放到最前面

    ``source_separator`` 是 ``path_value`` 本身的分隔符，默认与 ``separator`` 相同。
    """
    segments = [
        segment for segment in path_value.split(source_separator or separator)
        if segment and not _JAVA_SEGMENT.search(segment)
    ]
    return separator.join([java_bin_dir(java_home)] + segments)


class GeneratedScript(NamedTuple):
    text: str
    warnings: List[EnvSwitchError]


def _java_variables(env: JavaEnvironment, dialect: Dialect, environ: Mapping[str, str], scope: str,
                    host_separator: str):
    path = reconcile_path(
        environ.get("PATH", ""),
        env.java_home,
        dialect.path_separator or host_separator,
        source_separator=host_separator,
    )
    return [
        ("JAVA_HOME", env.java_home),
        ("PATH", path),
        (current_var(env.kind), env.name),
        (scope_var(env.kind), scope),
    ]


def generate(
    environment: Environment,
    shell: ShellTarget,
    mode: ScriptMode = ScriptMode.SESSION,
    environ: Optional[Mapping[str, str]] = None,
    path_separator: str = os.pathsep,
) -> GeneratedScript:
    """生成激活脚本

    ``environ`` 是本机的环境变量，``path_separator`` 是其中 PATH 的分隔符。
    """
    environ = os.environ if environ is None else environ
    if not isinstance(shell, ShellTarget):
        shell = parse_shell(shell)
    mode = ScriptMode(mode)
    dialect = SHELL_DIALECTS[shell]

    warnings: List[EnvSwitchError] = []
    if isinstance(environment, JavaEnvironment):
        variables: List[Tuple[str, str]] = _java_variables(
            environment, dialect, environ, mode.scope, path_separator
        )
    else:
        variables, warnings = activation_variables(environment, environ, mode.scope)

    for warning in warnings:
        logger.warning(warning.message, kind=warning.kind, environment=environment.name)

    lines = [dialect.assign(name, value) for name, value in variables]
    return GeneratedScript("\n".join(lines) + "\n", list(warnings))
