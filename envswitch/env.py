import os
import re
from typing import List, Mapping, NamedTuple, Optional, Tuple

from .config import CcEnvironment, Environment, EnvironmentKind, LlmEnvironment
from .errors import UnresolvedPlaceholder

PLACEHOLDER_PATTERN = re.compile(r"\$\{([A-Za-z_][A-Za-z0-9_]*)\}")

CURRENT_VAR_PREFIX = "ENVSWITCH_CURRENT_"
SCOPE_VAR_PREFIX = "ENVSWITCH_SCOPE_"

CC_API_TIMEOUT_MS = "3000000"

# provider -> (api key, base url, model)
LLM_PROVIDER_VARIABLES = {
    "openai": ("OPENAI_API_KEY", "OPENAI_BASE_URL", "OPENAI_MODEL"),
    "anthropic": ("ANTHROPIC_API_KEY", "ANTHROPIC_BASE_URL", "ANTHROPIC_MODEL"),
    "azure-openai": ("AZURE_OPENAI_API_KEY", "AZURE_OPENAI_ENDPOINT", "AZURE_OPENAI_DEPLOYMENT_NAME"),
    "google-gemini": ("GOOGLE_API_KEY", "GOOGLE_GEMINI_BASE_URL", "GOOGLE_GEMINI_MODEL"),
    "cohere": ("COHERE_API_KEY", "COHERE_BASE_URL", "COHERE_MODEL"),
    "mistral": ("MISTRAL_API_KEY", "MISTRAL_BASE_URL", "MISTRAL_MODEL"),
    "ollama": (None, "OLLAMA_BASE_URL", "OLLAMA_MODEL"),
}
GENERIC_LLM_VARIABLES = ("LLM_API_KEY", "LLM_BASE_URL", "LLM_MODEL")

# 不在 LLM_PROVIDER_VARIABLES 里的服务商使用 LLM_* 变量
KNOWN_LLM_PROVIDERS = frozenset([
    "openai", "anthropic", "azure-openai", "google-gemini", "cohere", "mistral",
    "ollama", "huggingface", "baidu", "alibaba", "tencent",
])

LLM_DEFAULT_BASE_URLS = {
    "openai": "https://api.openai.com/v1",
    "anthropic": "https://api.anthropic.com",
    "google-gemini": "https://generativelanguage.googleapis.com/v1",
    "cohere": "https://api.cohere.ai/v1",
    "mistral": "https://api.mistral.ai/v1",
    "ollama": "http://localhost:11434",
}


class ActivationVariables(NamedTuple):
    variables: List[Tuple[str, str]]
    warnings: List[UnresolvedPlaceholder]


def current_var(kind: EnvironmentKind) -> str:
    return CURRENT_VAR_PREFIX + EnvironmentKind(kind).value.upper()


def scope_var(kind: EnvironmentKind) -> str:
    return SCOPE_VAR_PREFIX + EnvironmentKind(kind).value.upper()


def find_placeholders(value: str) -> List[str]:
    return PLACEHOLDER_PATTERN.findall(value)


def resolve_placeholders(value: str, environ: Mapping[str, str]) -> Tuple[str, List[str]]:
    """把 ${VAR} 替换为环境变量的值，缺失的变量替换为空字符串

    返回：(替换后的字符串, 缺失的变量名列表)
    """
    missing = []

    def _replace(match):
        name = match.group(1)
        if name in environ:
            return environ[name]
        missing.append(name)
        return ""

    return PLACEHOLDER_PATTERN.sub(_replace, value), missing


class _Resolver:
    def __init__(self, environment: Environment, environ: Mapping[str, str]):
        self.environment = environment
        self.environ = environ
        self.warnings: List[UnresolvedPlaceholder] = []

    def __call__(self, field: str) -> str:
        value, missing = resolve_placeholders(getattr(self.environment, field), self.environ)
        for name in missing:
            self.warnings.append(UnresolvedPlaceholder(name, self.environment.name, field))
        return value


def _cc_variables(env: CcEnvironment, resolve: _Resolver) -> List[Tuple[str, str]]:
    variables = [
        ("ANTHROPIC_AUTH_TOKEN", resolve("api_key")),
        ("ANTHROPIC_BASE_URL", resolve("base_url")),
    ]

    model = resolve("model")
    if model:
        variables.append(("ANTHROPIC_MODEL", model))
        for tier in ("OPUS", "SONNET", "HAIKU"):
            variables.append((f"ANTHROPIC_DEFAULT_{tier}_MODEL", model))

    variables.append(("API_TIMEOUT_MS", CC_API_TIMEOUT_MS))
    variables.append(("CLAUDE_CODE_DISABLE_NONESSENTIAL_TRAFFIC", "1"))
    return variables


def _llm_variables(env: LlmEnvironment, resolve: _Resolver) -> List[Tuple[str, str]]:
    key_var, url_var, model_var = LLM_PROVIDER_VARIABLES.get(env.provider, GENERIC_LLM_VARIABLES)
    variables = []

    if key_var:
        variables.append((key_var, resolve("api_key")))

    base_url = resolve("base_url")
    if base_url:
        variables.append((url_var, base_url))

    model = resolve("model")
    if model:
        variables.append((model_var, model))

    if env.temperature is not None:
        variables.append(("LLM_TEMPERATURE", repr(float(env.temperature))))
    if env.max_tokens is not None:
        variables.append(("LLM_MAX_TOKENS", str(env.max_tokens)))

    variables.append(("LLM_PROVIDER", env.provider))
    return variables


def activation_variables(
    environment: Environment,
    environ: Optional[Mapping[str, str]] = None,
    scope: str = "session",
) -> ActivationVariables:
    """计算 CC/LLM 环境需要设置的环境变量（顺序固定）"""
    environ = os.environ if environ is None else environ
    resolve = _Resolver(environment, environ)

    if isinstance(environment, CcEnvironment):
        variables = _cc_variables(environment, resolve)
    elif isinstance(environment, LlmEnvironment):
        variables = _llm_variables(environment, resolve)
    else:
        raise TypeError(f"unsupported environment type: {type(environment).__name__}")

    variables.append((current_var(environment.kind), environment.name))
    variables.append((scope_var(environment.kind), scope))
    return ActivationVariables(variables, resolve.warnings)
