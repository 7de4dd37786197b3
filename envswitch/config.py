import copy
import os
import platform
import tempfile
from contextlib import suppress
from enum import Enum
from pathlib import Path
from typing import Any, ClassVar, Dict, List, Literal, Mapping, NamedTuple, Optional, Union

import structlog
import yaml
from pydantic import BaseModel, ConfigDict, Field, ValidationError, model_validator

from .errors import ConfigIoError, ConfigParseError, InvalidEnvironment

logger = structlog.get_logger(__name__)

CONFIG_VERSION = 2
CONFIG_FILE_NAME = "config.yaml"
HOME_ENV_VAR = "ENVSWITCH_HOME"


class EnvironmentKind(str, Enum):
    JAVA = "java"
    CC = "cc"
    LLM = "llm"

    @property
    def label(self) -> str:
        return {"java": "Java", "cc": "CC", "llm": "LLM"}[self.value]

    @property
    def supports_default(self) -> bool:
        # LLM 没有默认环境的概念
        return self is not EnvironmentKind.LLM


class JavaEnvironment(BaseModel):
    kind: ClassVar[EnvironmentKind] = EnvironmentKind.JAVA

    name: str
    java_home: str
    description: str = ""
    source: Literal["manual", "scanned"] = "manual"


class CcEnvironment(BaseModel):
    kind: ClassVar[EnvironmentKind] = EnvironmentKind.CC

    name: str
    provider: str = "anthropic"
    api_key: str = ""
    base_url: str = ""
    model: str = ""
    description: str = ""


class LlmEnvironment(BaseModel):
    kind: ClassVar[EnvironmentKind] = EnvironmentKind.LLM

    name: str
    provider: str
    api_key: str = ""
    base_url: str = ""
    model: str = Field("", max_length=100)
    temperature: Optional[float] = Field(None, ge=0, le=2)
    max_tokens: Optional[int] = Field(None, gt=0, le=32768)
    description: str = ""


Environment = Union[JavaEnvironment, CcEnvironment, LlmEnvironment]


def _describe(error: ValidationError) -> str:
    return "; ".join(
        f"{'.'.join(str(p) for p in err['loc']) or '<root>'}: {err['msg']}"
        for err in error.errors()
    )


def build_environment(model, /, **fields) -> Environment:
    """根据命令行参数创建环境，字段校验失败时抛出 InvalidEnvironment"""
    try:
        return model(**fields)
    except ValidationError as e:
        raise InvalidEnvironment(
            f"Invalid {model.kind.label} environment '{fields.get('name', '')}': {_describe(e)}"
        ) from None

_LIST_FIELDS = {
    EnvironmentKind.JAVA: "java_environments",
    EnvironmentKind.CC: "cc_environments",
    EnvironmentKind.LLM: "llm_environments",
}

_DEFAULT_FIELDS = {
    EnvironmentKind.JAVA: "default_java_env",
    EnvironmentKind.CC: "default_cc_env",
}


class Configuration(BaseModel):
    # 未知字段原样保留，便于新旧版本共存
    model_config = ConfigDict(extra="allow")

    version: int = CONFIG_VERSION
    java_environments: List[JavaEnvironment] = Field(default_factory=list)
    cc_environments: List[CcEnvironment] = Field(default_factory=list)
    llm_environments: List[LlmEnvironment] = Field(default_factory=list)
    default_java_env: Optional[str] = None
    default_cc_env: Optional[str] = None
    custom_java_scan_paths: List[str] = Field(default_factory=list)
    removed_java_names: List[str] = Field(default_factory=list)

    @model_validator(mode="after")
    def _check_invariants(self) -> "Configuration":
        for kind in EnvironmentKind:
            seen = set()
            for entry in self.entries(kind):
                if entry.name in seen:
                    raise ValueError(f"duplicate {kind.label} environment name '{entry.name}'")
                seen.add(entry.name)

            if kind.supports_default:
                default = self.get_default_name(kind)
                if default is not None and default not in seen:
                    raise ValueError(
                        f"default {kind.label} environment '{default}' does not exist"
                    )
        return self

    def entries(self, kind: EnvironmentKind) -> List[Any]:
        return getattr(self, _LIST_FIELDS[EnvironmentKind(kind)])

    def get_default_name(self, kind: EnvironmentKind) -> Optional[str]:
        kind = EnvironmentKind(kind)
        if not kind.supports_default:
            return None
        return getattr(self, _DEFAULT_FIELDS[kind])

    def set_default_name(self, kind: EnvironmentKind, name: Optional[str]):
        kind = EnvironmentKind(kind)
        if not kind.supports_default:
            raise ValueError(f"{kind.label} environments have no default")
        setattr(self, _DEFAULT_FIELDS[kind], name)


def builtin_cc_environments() -> List[CcEnvironment]:
    """内置的 Claude Code 兼容配置，由 sync 补全"""
    return [
        CcEnvironment(
            name="anthropic-cc",
            api_key="${ANTHROPIC_API_KEY}",
            base_url="https://api.anthropic.com",
            model="claude-sonnet-4-5",
            description="Anthropic Claude Code",
        ),
        CcEnvironment(
            name="moonshot-cc",
            api_key="${MOONSHOT_API_KEY}",
            base_url="https://api.moonshot.cn/anthropic",
            model="kimi-k2-turbo-preview",
            description="Moonshot Claude Code",
        ),
        CcEnvironment(
            name="glmcc",
            api_key="${GLM_API_KEY}",
            base_url="https://open.bigmodel.cn/api/anthropic",
            model="glm-4.6",
            description="Zhipu GLM Claude Code",
        ),
        CcEnvironment(
            name="anycc",
            api_key="${ANY_API_KEY}",
            base_url="https://api.any-api.com/anthropic",
            model="claude-sonnet-4-5",
            description="AnyAPI Claude Code",
        ),
        CcEnvironment(
            name="kimicc",
            api_key="${KIMI_API_KEY}",
            base_url="https://api.moonshot.cn/anthropic",
            model="kimi-k2-turbo-preview",
            description="Kimi Claude Code",
        ),
    ]


def migrate_document(document: Dict[str, Any]) -> Dict[str, Any]:
    """把旧版本的配置文档升级到当前版本（原地修改）

    只补全和清理已知字段，未知字段和条目全部保留。
    """
    version = document.get("version", 1)
    if not isinstance(version, int):
        raise ConfigParseError(f"invalid config version: {version!r}")
    if version > CONFIG_VERSION:
        raise ConfigParseError(
            f"config version {version} is newer than supported version {CONFIG_VERSION}",
            "upgrade envswitch",
        )

    if version < 2:
        # v1 持久化了会话指针，现在会话状态只存在于 shell 中
        document.pop("current_java_env", None)
        for entry in document.get("java_environments") or []:
            if isinstance(entry, dict):
                entry.setdefault("source", "manual")

    for kind, default_key in _DEFAULT_FIELDS.items():
        name = document.get(default_key)
        if name is None:
            continue
        names = {
            entry.get("name")
            for entry in document.get(_LIST_FIELDS[kind]) or []
            if isinstance(entry, dict)
        }
        if name not in names:
            logger.warning("dropping dangling default", kind=kind.value, name=name)
            document[default_key] = None

    document["version"] = CONFIG_VERSION
    return document


def get_config_dir(environ: Optional[Mapping[str, str]] = None) -> Path:
    environ = os.environ if environ is None else environ
    override = environ.get(HOME_ENV_VAR)
    if override:
        return Path(override).expanduser()
    if platform.system() == "Windows":
        return Path.home() / "AppData" / "Roaming" / "envswitch"
    return Path.home() / ".config" / "envswitch"


class SyncResult(NamedTuple):
    changed: bool
    migrated_from: Optional[int]
    added: List[str]


class ConfigStore:
    """单一配置文件的读写

    写入使用同目录临时文件 + rename，任何时候都不会留下写了一半的配置文件。
    存储层不解析 ``${VAR}`` 占位符。
    """

    def __init__(self, path: Optional[Path] = None):
        self.path = Path(path) if path is not None else get_config_dir() / CONFIG_FILE_NAME

    def load(self) -> Configuration:
        document = self._read_document()
        if not document:
            return Configuration()

        document.setdefault("version", 1)
        if isinstance(document["version"], int) and document["version"] > CONFIG_VERSION:
            raise ConfigParseError(
                f"config version {document['version']} is newer than supported version {CONFIG_VERSION}",
                "upgrade envswitch",
            )
        if document["version"] != CONFIG_VERSION:
            logger.info("config schema is outdated", path=str(self.path), version=document["version"])
        return self._validate(document)

    def save(self, config: Configuration):
        self._write_document(config.model_dump(mode="json"))
        logger.debug("config saved", path=str(self.path))

    def sync(self) -> SyncResult:
        document = self._read_document()
        existed = document is not None
        original = copy.deepcopy(document) if existed else None

        document = dict(document or {})
        if not document:
            document["version"] = CONFIG_VERSION
        from_version = document.get("version", 1)

        config = self._validate(migrate_document(document))

        added = []
        existing = {env.name for env in config.cc_environments}
        for preset in builtin_cc_environments():
            if preset.name not in existing:
                config.cc_environments.append(preset)
                added.append(preset.name)

        new_document = config.model_dump(mode="json")
        if existed and new_document == original:
            return SyncResult(False, None, [])

        self._write_document(new_document)
        migrated_from = from_version if from_version != CONFIG_VERSION else None
        return SyncResult(True, migrated_from, added)

    def _read_document(self) -> Optional[Dict[str, Any]]:
        try:
            text = self.path.read_text(encoding="utf-8")
        except FileNotFoundError:
            return None
        except OSError as e:
            raise ConfigIoError(f"cannot read {self.path}: {e}") from e

        try:
            data = yaml.safe_load(text)
        except yaml.YAMLError as e:
            raise ConfigParseError(f"malformed YAML in {self.path}: {e}") from e

        if data is None:
            return {}
        if not isinstance(data, dict):
            raise ConfigParseError(f"{self.path}: top-level document must be a mapping")
        return data

    def _validate(self, document: Dict[str, Any]) -> Configuration:
        try:
            return Configuration.model_validate(document)
        except ValidationError as e:
            raise ConfigParseError(f"invalid configuration in {self.path}: {_describe(e)}") from e

    def _write_document(self, document: Dict[str, Any]):
        text = yaml.safe_dump(
            document, default_flow_style=False, sort_keys=False, allow_unicode=True
        )
        directory = self.path.parent

        try:
            directory.mkdir(parents=True, exist_ok=True)
            fd, tmp_name = tempfile.mkstemp(
                prefix=f".{self.path.name}.", suffix=".tmp", dir=str(directory)
            )
        except OSError as e:
            raise ConfigIoError(f"cannot write {self.path}: {e}") from e

        tmp_path = Path(tmp_name)
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                f.write(text)
                f.flush()
                os.fsync(f.fileno())
            # 配置里可能有明文 API key
            os.chmod(tmp_path, 0o600)
            os.replace(tmp_path, self.path)
        except OSError as e:
            with suppress(OSError):
                tmp_path.unlink()
            raise ConfigIoError(f"cannot write {self.path}: {e}") from e
