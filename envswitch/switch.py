import os
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import List, Mapping, NamedTuple, Optional, Sequence

import structlog

from .config import ConfigStore, Environment, EnvironmentKind, JavaEnvironment, LlmEnvironment
from .env import KNOWN_LLM_PROVIDERS, current_var
from .errors import InvalidEnvironment
from .registry import EnvironmentRegistry, MergeResult
from .scanner import JavaScanner, ScanReport, canonicalize, default_scan_roots, is_jdk_home
from .scripts import GeneratedScript, ScriptMode, ShellTarget, generate
from .utils import is_valid_env_name, is_valid_url

logger = structlog.get_logger(__name__)


class SwitchStatus(str, Enum):
    NO_ENVIRONMENT = "NoEnvironment"
    DEFAULT_ACTIVE = "DefaultActive"
    SESSION_OVERRIDE = "SessionOverride"


@dataclass(frozen=True)
class SwitchState:
    status: SwitchStatus
    name: Optional[str] = None

    @classmethod
    def none(cls) -> "SwitchState":
        return cls(SwitchStatus.NO_ENVIRONMENT)

    @property
    def is_active(self) -> bool:
        return self.status is not SwitchStatus.NO_ENVIRONMENT


class ListedEnvironment(NamedTuple):
    environment: Environment
    is_default: bool


class ScanOutcome(NamedTuple):
    report: ScanReport
    merge: MergeResult


class EnvironmentSwitch:
    """环境切换的入口

    每次调用都重新读取配置；只有写操作（add/remove/default/scan）才会保存。
    会话级切换（use）只生成脚本，不改动配置文件。
    """

    def __init__(self, store: Optional[ConfigStore] = None, scanner: Optional[JavaScanner] = None,
                 environ: Optional[Mapping[str, str]] = None):
        self.store = store or ConfigStore()
        self.scanner = scanner
        self.environ = os.environ if environ is None else environ

    def _load(self):
        config = self.store.load()
        return config, EnvironmentRegistry(config)

    def list(self, kind: EnvironmentKind) -> List[ListedEnvironment]:
        config, registry = self._load()
        default = config.get_default_name(kind)
        return [
            ListedEnvironment(env, env.name == default)
            for env in registry.environments(kind)
        ]

    def add(self, environment: Environment, make_default: bool = False) -> Environment:
        if not is_valid_env_name(environment.name):
            raise InvalidEnvironment(
                f"Invalid environment name '{environment.name}'. "
                "Use letters, digits, '.', '_' or '-' (max 50 characters)"
            )

        base_url = getattr(environment, "base_url", "")
        if base_url and not is_valid_url(base_url):
            raise InvalidEnvironment(f"Invalid base URL '{base_url}'")

        if isinstance(environment, JavaEnvironment) and not is_jdk_home(Path(environment.java_home)):
            logger.warning("java home does not look like a JDK", java_home=environment.java_home)
        if isinstance(environment, LlmEnvironment) and environment.provider.lower() not in KNOWN_LLM_PROVIDERS:
            logger.warning("unknown llm provider, generic LLM_* variables will be used",
                           provider=environment.provider)

        config, registry = self._load()
        registry.add(environment)
        if make_default:
            registry.set_default(environment.kind, environment.name)
        self.store.save(config)
        logger.info("environment added", kind=environment.kind.value, name=environment.name)
        return environment

    def remove(self, kind: EnvironmentKind, name: str) -> bool:
        """删除环境，返回是否同时清除了默认环境"""
        config, registry = self._load()
        cleared = registry.remove(kind, name)
        self.store.save(config)
        logger.info("environment removed", kind=EnvironmentKind(kind).value, name=name,
                    default_cleared=cleared)
        return cleared

    def use(self, kind: EnvironmentKind, name: str, shell: ShellTarget) -> GeneratedScript:
        _, registry = self._load()
        environment = registry.get(kind, name)
        return generate(environment, shell, ScriptMode.SESSION, self.environ)

    def set_default(self, kind: EnvironmentKind, name: str):
        config, registry = self._load()
        registry.set_default(kind, name)
        self.store.save(config)

    def get_default(self, kind: EnvironmentKind) -> SwitchState:
        _, registry = self._load()
        name = registry.get_default(kind)
        if name is None:
            return SwitchState.none()
        return SwitchState(SwitchStatus.DEFAULT_ACTIVE, name)

    def unset_default(self, kind: EnvironmentKind):
        config, registry = self._load()
        registry.clear_default(kind)
        self.store.save(config)

    def current(self, kind: EnvironmentKind) -> SwitchState:
        """当前 shell 中生效的环境

        优先看 use/hook 留下的 ENVSWITCH_CURRENT_* 标记；Java 还会比对 JAVA_HOME；
        都没有时返回默认环境。
        """
        kind = EnvironmentKind(kind)
        config, registry = self._load()
        environments = registry.environments(kind)
        default = config.get_default_name(kind)

        name = self.environ.get(current_var(kind))
        if not name or name not in environments:
            name = None
            if kind is EnvironmentKind.JAVA:
                name = self._match_java_home(environments)

        if name is not None:
            if name == default:
                return SwitchState(SwitchStatus.DEFAULT_ACTIVE, name)
            return SwitchState(SwitchStatus.SESSION_OVERRIDE, name)

        if default is not None:
            return SwitchState(SwitchStatus.DEFAULT_ACTIVE, default)
        return SwitchState.none()

    def _match_java_home(self, environments) -> Optional[str]:
        java_home = self.environ.get("JAVA_HOME")
        if not java_home:
            return None
        target = canonicalize(java_home)
        for env in environments:
            if canonicalize(env.java_home) == target:
                return env.name
        return None

    def scan(self, extra_roots: Sequence[Path] = (), include_defaults: bool = True) -> ScanOutcome:
        config, registry = self._load()

        roots = list(default_scan_roots(config.custom_java_scan_paths, self.environ)) if include_defaults else []
        for root in extra_roots:
            if Path(root) not in roots:
                roots.append(Path(root))

        scanner = self.scanner or JavaScanner()
        report = scanner.scan(roots)
        merge = registry.merge_scan(report.candidates)

        if merge.added:
            self.store.save(config)
        logger.info("java scan merged", added=len(merge.added), skipped=len(merge.skipped))
        return ScanOutcome(report, merge)

    def default_scripts(self, shell: ShellTarget) -> List[GeneratedScript]:
        """所有默认环境的脚本，供 env 命令和 shell hook 使用"""
        config, registry = self._load()
        scripts = []
        for kind in EnvironmentKind:
            name = config.get_default_name(kind)
            if name is None:
                continue
            environment = registry.get(kind, name)
            scripts.append(generate(environment, shell, ScriptMode.PERSIST, self.environ))
        return scripts
