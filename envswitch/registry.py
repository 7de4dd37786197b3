from typing import Generic, Iterator, List, NamedTuple, Optional, Sequence, TypeVar

from .config import Configuration, Environment, EnvironmentKind, JavaEnvironment
from .errors import DuplicateName, EnvironmentNotFound, InvalidEnvironment
from .scanner import ScanCandidate, canonicalize

T = TypeVar("T")


class EnvironmentSet(Generic[T]):
    """按名称索引的环境集合，直接操作 Configuration 中对应的列表

    名称区分大小写且唯一；列表顺序即添加顺序，仅用于展示。
    """

    def __init__(self, kind: EnvironmentKind, entries: List[T]):
        self.kind = kind
        self._entries = entries

    def __iter__(self) -> Iterator[T]:
        return iter(list(self._entries))

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, name: object) -> bool:
        return any(entry.name == name for entry in self._entries)

    def names(self) -> List[str]:
        return [entry.name for entry in self._entries]

    def find(self, name: str) -> Optional[T]:
        for entry in self._entries:
            if entry.name == name:
                return entry
        return None

    def get(self, name: str) -> T:
        entry = self.find(name)
        if entry is None:
            raise EnvironmentNotFound(self.kind.value, name, self.find_similar(name))
        return entry

    def add(self, entry: T):
        if entry.name in self:
            raise DuplicateName(self.kind.value, entry.name)
        self._entries.append(entry)

    def remove(self, name: str) -> T:
        entry = self.get(name)
        self._entries.remove(entry)
        return entry

    def find_similar(self, name: str) -> List[str]:
        similar = []

        name_lower = name.lower()
        for candidate in self.names():
            candidate_lower = candidate.lower()
            if (name_lower in candidate_lower or
                candidate_lower in name_lower or
                abs(len(name_lower) - len(candidate_lower)) <= 2):
                similar.append(candidate)

        return similar[:3]


class SkippedCandidate(NamedTuple):
    name: str
    path: str
    reason: str


class MergeResult(NamedTuple):
    added: List[JavaEnvironment]
    skipped: List[SkippedCandidate]


class EnvironmentRegistry:
    def __init__(self, config: Configuration):
        self.config = config

    def environments(self, kind: EnvironmentKind) -> EnvironmentSet:
        kind = EnvironmentKind(kind)
        return EnvironmentSet(kind, self.config.entries(kind))

    def get(self, kind: EnvironmentKind, name: str) -> Environment:
        return self.environments(kind).get(name)

    def add(self, environment: Environment):
        self.environments(environment.kind).add(environment)
        if environment.kind is EnvironmentKind.JAVA and environment.name in self.config.removed_java_names:
            self.config.removed_java_names.remove(environment.name)

    def remove(self, kind: EnvironmentKind, name: str) -> bool:
        """删除环境，返回是否同时清除了默认环境"""
        kind = EnvironmentKind(kind)
        self.environments(kind).remove(name)

        if kind is EnvironmentKind.JAVA and name not in self.config.removed_java_names:
            # 记住手动删除的名称，避免下次扫描又加回来
            self.config.removed_java_names.append(name)

        if kind.supports_default and self.config.get_default_name(kind) == name:
            self.config.set_default_name(kind, None)
            return True
        return False

    def get_default(self, kind: EnvironmentKind) -> Optional[str]:
        kind = EnvironmentKind(kind)
        if not kind.supports_default:
            raise InvalidEnvironment(f"{kind.label} environments have no default")
        return self.config.get_default_name(kind)

    def set_default(self, kind: EnvironmentKind, name: str):
        kind = EnvironmentKind(kind)
        if not kind.supports_default:
            raise InvalidEnvironment(f"{kind.label} environments have no default")
        self.environments(kind).get(name)
        self.config.set_default_name(kind, name)

    def clear_default(self, kind: EnvironmentKind):
        self.config.set_default_name(kind, None)

    def merge_scan(self, candidates: Sequence[ScanCandidate]) -> MergeResult:
        """把扫描结果合并进 Java 环境集合（只增不改）"""
        java = self.environments(EnvironmentKind.JAVA)
        registered = {canonicalize(env.java_home): env.name for env in java}

        added = []
        skipped = []
        for candidate in candidates:
            name = candidate.suggested_name
            path = str(candidate.path)

            if candidate.canonical_path in registered:
                skipped.append(SkippedCandidate(
                    name, path, f"already registered as '{registered[candidate.canonical_path]}'"
                ))
            elif name in java:
                skipped.append(SkippedCandidate(name, path, "name collision"))
            elif name in self.config.removed_java_names:
                skipped.append(SkippedCandidate(name, path, "previously removed"))
            else:
                environment = JavaEnvironment(
                    name=name,
                    java_home=path,
                    description=candidate.description,
                    source="scanned",
                )
                java.add(environment)
                registered[candidate.canonical_path] = name
                added.append(environment)

        return MergeResult(added, skipped)
