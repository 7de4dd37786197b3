"""Java 安装扫描

扫描只读取文件系统（``release`` 文件和目录结构），不会执行 ``java``。

去重策略：规范路径（解析符号链接后）相同视为同一个安装；
开启 ``dedupe_by_fingerprint`` 时，厂商+版本相同也视为重复，保留先发现的路径。
后者只是一种取舍，可以通过参数关闭。
"""

import os
import platform
import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, Iterable, Iterator, List, Mapping, NamedTuple, Optional, Sequence, Tuple

import structlog

from .errors import ScanPathUnreadable

logger = structlog.get_logger(__name__)

SCAN_PATHS_ENV_VAR = "ENVSWITCH_JAVA_SCAN_PATHS"
JAVA_EXECUTABLES = ("java", "java.exe")

_VENDOR_HINTS = (
    ("temurin", "Eclipse Adoptium"),
    ("adoptium", "Eclipse Adoptium"),
    ("adoptopenjdk", "Eclipse Adoptium"),
    ("corretto", "Amazon"),
    ("amazon", "Amazon"),
    ("microsoft", "Microsoft"),
    ("zulu", "Azul Zulu"),
    ("liberica", "BellSoft Liberica"),
    ("graalvm", "GraalVM"),
    ("openlogic", "OpenLogic"),
    ("oracle", "Oracle"),
)

_VERSION_PATTERN = re.compile(r"\d+(?:\.\d+)*")
_NAME_UNSAFE = re.compile(r"[^A-Za-z0-9_.-]+")
_JDK_DIR_NAME = re.compile(r"java|jdk|jre", re.IGNORECASE)


def canonicalize(path) -> str:
    return os.path.normcase(os.path.realpath(str(path)))


def bundle_dir(home: Path) -> Path:
    # macOS: Foo.jdk/Contents/Home
    if home.name == "Home" and home.parent.name == "Contents":
        return home.parent.parent
    return home


def is_jdk_home(path: Path) -> bool:
    if (path / "release").is_file():
        return True
    return any((path / "bin" / exe).is_file() for exe in JAVA_EXECUTABLES)


def read_release_file(home: Path) -> Dict[str, str]:
    try:
        text = (home / "release").read_text(encoding="utf-8", errors="replace")
    except FileNotFoundError:
        return {}

    values = {}
    for line in text.splitlines():
        key, sep, value = line.partition("=")
        if sep:
            values[key.strip()] = value.strip().strip('"')
    return values


def version_from_name(home: Path) -> Optional[str]:
    match = _VERSION_PATTERN.search(bundle_dir(home).name)
    return match.group(0) if match else None


def guess_vendor(path: str) -> Optional[str]:
    path_lower = path.lower()
    for hint, vendor in _VENDOR_HINTS:
        if hint in path_lower:
            return vendor
    return None


@dataclass(frozen=True)
class ScanCandidate:
    path: Path
    canonical_path: str
    version: Optional[str] = None
    vendor: Optional[str] = None

    @property
    def fingerprint(self) -> Optional[Tuple[str, str]]:
        # 版本未知时无法判断是否同一发行版，只按路径去重
        if not self.version:
            return None
        return (self.vendor or "unknown", self.version)

    @property
    def suggested_name(self) -> str:
        name = bundle_dir(self.path).name
        if name.endswith(".jdk"):
            name = name[:-4]
        name = _NAME_UNSAFE.sub("-", name).strip("-.")
        return name[:50] or "java"

    @property
    def description(self) -> str:
        text = f"Java {self.version or 'unknown'}"
        if self.vendor:
            text += f" ({self.vendor})"
        return text


class DuplicateCandidate(NamedTuple):
    path: Path
    kept_path: Path
    reason: str


@dataclass
class ScanReport:
    candidates: List[ScanCandidate] = field(default_factory=list)
    duplicates: List[DuplicateCandidate] = field(default_factory=list)
    warnings: List[ScanPathUnreadable] = field(default_factory=list)


class JavaScanner:
    def __init__(self, dedupe_by_fingerprint: bool = True):
        self.dedupe_by_fingerprint = dedupe_by_fingerprint

    def scan(self, roots: Sequence[Path]) -> ScanReport:
        report = ScanReport()
        by_path: Dict[str, ScanCandidate] = {}
        by_fingerprint: Dict[Tuple[str, str], ScanCandidate] = {}

        for root in roots:
            for home in self._discover(Path(root), report):
                candidate = self._inspect(home, report)
                if candidate is not None:
                    self._accept(candidate, report, by_path, by_fingerprint)

        logger.debug(
            "java scan finished",
            roots=len(roots),
            candidates=len(report.candidates),
            duplicates=len(report.duplicates),
            warnings=len(report.warnings),
        )
        return report

    def _discover(self, root: Path, report: ScanReport) -> Iterator[Path]:
        try:
            if not root.is_dir():
                return
            if is_jdk_home(root):
                yield root
                return
            children = sorted(root.iterdir(), key=lambda p: p.name)
        except OSError as e:
            self._warn(report, root, e)
            return

        for child in children:
            try:
                if not child.is_dir():
                    continue
                homes = [home for home in (child, child / "Contents" / "Home") if is_jdk_home(home)]
            except OSError as e:
                self._warn(report, child, e)
                continue
            if homes:
                yield homes[0]

    def _inspect(self, home: Path, report: ScanReport) -> Optional[ScanCandidate]:
        try:
            release = read_release_file(home)
            canonical = canonicalize(home)
        except OSError as e:
            self._warn(report, home, e)
            return None

        return ScanCandidate(
            path=home,
            canonical_path=canonical,
            version=release.get("JAVA_VERSION") or version_from_name(home),
            vendor=release.get("IMPLEMENTOR") or guess_vendor(str(home)),
        )

    def _accept(self, candidate, report, by_path, by_fingerprint):
        kept = by_path.get(candidate.canonical_path)
        if kept is not None:
            report.duplicates.append(DuplicateCandidate(candidate.path, kept.path, "same canonical path"))
            return

        fingerprint = candidate.fingerprint
        if self.dedupe_by_fingerprint and fingerprint is not None and fingerprint in by_fingerprint:
            kept = by_fingerprint[fingerprint]
            report.duplicates.append(
                DuplicateCandidate(candidate.path, kept.path, "same vendor and version")
            )
            return

        by_path[candidate.canonical_path] = candidate
        if fingerprint is not None:
            by_fingerprint[fingerprint] = candidate
        report.candidates.append(candidate)

    def _warn(self, report: ScanReport, path: Path, error: OSError):
        warning = ScanPathUnreadable(path, error.strerror or str(error))
        report.warnings.append(warning)
        logger.warning("skipping unreadable scan path", path=str(path), error=warning.reason)


def platform_scan_roots(system: str, home: Path, environ: Mapping[str, str]) -> List[Path]:
    if system == "Windows":
        roots = []
        for var in ("ProgramFiles", "ProgramFiles(x86)"):
            base = environ.get(var)
            if not base:
                continue
            roots.append(Path(base) / "Java")
            if var == "ProgramFiles":
                for vendor_dir in ("Eclipse Adoptium", "Amazon Corretto", "Microsoft", "Zulu"):
                    roots.append(Path(base) / vendor_dir)
        roots.append(home / ".jdks")
        return roots

    if system == "Darwin":
        return [
            Path("/Library/Java/JavaVirtualMachines"),
            home / "Library" / "Java" / "JavaVirtualMachines",
            home / ".sdkman" / "candidates" / "java",
            home / ".jdks",
        ]

    return [
        Path("/usr/lib/jvm"),
        Path("/usr/java"),
        Path("/usr/local/java"),
        Path("/opt/java"),
        home / ".sdkman" / "candidates" / "java",
        home / ".jdks",
    ]


def java_homes_on_path(path_value: str) -> Iterator[Path]:
    """PATH 中含有 java 可执行文件的目录对应的 JAVA_HOME"""
    for entry in path_value.split(os.pathsep):
        if not entry:
            continue
        for exe in JAVA_EXECUTABLES:
            candidate = Path(entry) / exe
            try:
                if not candidate.is_file():
                    continue
                # /usr/bin/java 通常是指向真实 JDK 的符号链接
                real = candidate.resolve()
            except OSError:
                continue
            if real.parent.name.lower() != "bin":
                break
            home = real.parent.parent
            # 不是符号链接的 /usr/bin/java 会得到 /usr
            if (home / "release").is_file() or _JDK_DIR_NAME.search(home.name):
                yield home
            else:
                logger.debug("ignoring java outside a JDK layout", java=str(real))
            break


def default_scan_roots(
    custom_paths: Iterable[str] = (),
    environ: Optional[Mapping[str, str]] = None,
    system: Optional[str] = None,
) -> List[Path]:
    environ = os.environ if environ is None else environ
    system = system or platform.system()
    home = Path(environ["HOME"]) if environ.get("HOME") else Path.home()

    roots: List[Path] = []
    roots.extend(platform_scan_roots(system, home, environ))
    roots.extend(Path(p).expanduser() for p in custom_paths if p)

    extra = environ.get(SCAN_PATHS_ENV_VAR, "")
    roots.extend(Path(p.strip()).expanduser() for p in extra.split(os.pathsep) if p.strip())
    roots.extend(java_homes_on_path(environ.get("PATH", "")))

    unique = []
    seen = set()
    for root in roots:
        key = str(root)
        if key not in seen:
            seen.add(key)
            unique.append(root)
    return unique
