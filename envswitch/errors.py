"""错误类型定义

每个错误类都带有 ``kind`` 名称，CLI 输出错误时会带上它，方便用户区分错误种类。
``ScanPathUnreadable`` 和 ``UnresolvedPlaceholder`` 属于警告，只会被收集和记录，不会被抛出。
"""

from typing import Iterable, Optional


class EnvSwitchError(Exception):
    kind = "EnvSwitchError"

    def __init__(self, message: str, hint: str = ""):
        super().__init__(message)
        self.message = message
        self.hint = hint

    def __str__(self) -> str:
        text = f"{self.kind}: {self.message}"
        if self.hint:
            text += f" ({self.hint})"
        return text


class EnvironmentNotFound(EnvSwitchError):
    kind = "EnvironmentNotFound"

    def __init__(self, env_kind: str, name: str, similar: Optional[Iterable[str]] = None):
        self.env_kind = env_kind
        self.name = name
        self.similar = list(similar or [])
        if self.similar:
            hint = f"did you mean: {', '.join(self.similar)}?"
        else:
            hint = f"use 'envswitch {env_kind} list' to see available environments"
        super().__init__(f"{_label(env_kind)} environment '{name}' not found", hint)


class DuplicateName(EnvSwitchError):
    kind = "DuplicateName"

    def __init__(self, env_kind: str, name: str):
        self.env_kind = env_kind
        self.name = name
        super().__init__(f"{_label(env_kind)} environment '{name}' already exists")


class InvalidEnvironment(EnvSwitchError, ValueError):
    kind = "InvalidEnvironment"


class InvalidArgument(EnvSwitchError):
    kind = "InvalidArgument"


class ConfigParseError(EnvSwitchError):
    kind = "ConfigParseError"


class ConfigIoError(EnvSwitchError):
    kind = "ConfigIoError"


class UnsupportedShell(EnvSwitchError):
    kind = "UnsupportedShell"

    def __init__(self, shell: str, supported: Iterable[str]):
        self.shell = shell
        super().__init__(
            f"shell '{shell}' is not supported",
            f"choose one of: {', '.join(supported)}",
        )


class ScanPathUnreadable(EnvSwitchError):
    kind = "ScanPathUnreadable"

    def __init__(self, path, reason: str):
        self.path = path
        self.reason = reason
        super().__init__(f"cannot read '{path}': {reason}")


class UnresolvedPlaceholder(EnvSwitchError):
    kind = "UnresolvedPlaceholder"

    def __init__(self, variable: str, environment: str, field: str):
        self.variable = variable
        self.environment = environment
        self.field = field
        super().__init__(
            f"${{{variable}}} in '{environment}' ({field}) is not set, using an empty string"
        )


def _label(env_kind: str) -> str:
    return {"java": "Java", "cc": "CC", "llm": "LLM"}.get(env_kind, env_kind)
