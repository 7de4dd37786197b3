"""
envswitch - Java / Claude Code / LLM 环境切换工具

在多个 JDK、Claude Code 兼容服务和 LLM 服务之间快速切换，
通过输出 shell 脚本在当前终端生效，也可以设置新终端的默认环境。
"""

__version__ = "0.1.0"
__description__ = "Switch Java, Claude Code and LLM environments from the command line"

from .config import (
    CcEnvironment,
    ConfigStore,
    Configuration,
    EnvironmentKind,
    JavaEnvironment,
    LlmEnvironment,
)
from .errors import EnvSwitchError
from .registry import EnvironmentRegistry
from .scanner import JavaScanner
from .scripts import ScriptMode, ShellTarget, generate
from .switch import EnvironmentSwitch, SwitchState, SwitchStatus

__all__ = [
    "CcEnvironment",
    "ConfigStore",
    "Configuration",
    "EnvironmentKind",
    "JavaEnvironment",
    "LlmEnvironment",
    "EnvSwitchError",
    "EnvironmentRegistry",
    "JavaScanner",
    "ScriptMode",
    "ShellTarget",
    "generate",
    "EnvironmentSwitch",
    "SwitchState",
    "SwitchStatus",
]
