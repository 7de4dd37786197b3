import re
import sys
from typing import List

from .env import find_placeholders

MAX_NAME_LENGTH = 50

_NAME_PATTERN = re.compile(r"^[A-Za-z0-9][A-Za-z0-9_.-]*$")


def is_valid_env_name(name: str) -> bool:
    """验证环境名称是否有效"""
    if not name or not name.strip():
        return False

    if len(name) > MAX_NAME_LENGTH:
        return False

    return _NAME_PATTERN.match(name) is not None


def is_valid_url(url: str) -> bool:
    """验证URL是否有效，允许 ${VAR} 占位符"""
    if not url:
        return False

    if find_placeholders(url):
        return True

    url_pattern = re.compile(
        r"^https?://"  # http:// or https://
        r"(?:(?:[A-Z0-9](?:[A-Z0-9-]{0,61}[A-Z0-9])?\.)+[A-Z]{2,63}\.?|"  # domain...
        r"localhost|"  # localhost...
        r"\d{1,3}\.\d{1,3}\.\d{1,3}\.\d{1,3})"  # ...or ip
        r"(?::\d+)?"  # optional port
        r"(?:/?|[/?]\S+)$",
        re.IGNORECASE,
    )

    return url_pattern.match(url) is not None


def normalize_url(url: str) -> str:
    """规范化URL格式"""
    url = url.strip()

    if not url.startswith(("http://", "https://", "${")):
        url = "https://" + url

    if url.endswith("/"):
        url = url.rstrip("/")

    return url


def mask_sensitive_value(value: str, mask_char: str = "*") -> str:
    """遮盖敏感信息，占位符原样显示"""
    if find_placeholders(value):
        return value

    if len(value) <= 8:
        return mask_char * len(value)

    visible_chars = 4
    return (
        value[:visible_chars]
        + mask_char * (len(value) - visible_chars * 2)
        + value[-visible_chars:]
    )


def format_table(headers: List[str], rows: List[List[str]], min_width: int = 10) -> str:
    """格式化表格显示"""
    if not rows:
        return ""

    col_widths = [max(len(str(header)), min_width) for header in headers]

    for row in rows:
        for i, cell in enumerate(row):
            if i < len(col_widths):
                col_widths[i] = max(col_widths[i], len(str(cell)))

    header_line = " | ".join(
        header.ljust(col_widths[i]) for i, header in enumerate(headers)
    )
    separator_line = "-+-".join("-" * width for width in col_widths)

    lines = [header_line.rstrip(), separator_line]

    for row in rows:
        formatted_row = []
        for i, cell in enumerate(row):
            if i < len(col_widths):
                formatted_row.append(str(cell).ljust(col_widths[i]))
        lines.append(" | ".join(formatted_row).rstrip())

    return "\n".join(lines)


def colorize(text: str, color: str) -> str:
    """为文本添加颜色（仅在支持的终端中）

    提示信息都输出到 stderr，所以这里检查 stderr。
    """
    if not sys.stderr.isatty():
        return text

    colors = {
        "red": "\033[31m",
        "green": "\033[32m",
        "yellow": "\033[33m",
        "blue": "\033[34m",
        "reset": "\033[0m",
    }

    if color.lower() in colors:
        return f"{colors[color.lower()]}{text}{colors['reset']}"

    return text


def success_message(text: str) -> str:
    return colorize(f"✓ {text}", "green")


def error_message(text: str) -> str:
    return colorize(f"✗ {text}", "red")


def warning_message(text: str) -> str:
    return colorize(f"⚠ {text}", "yellow")


def info_message(text: str) -> str:
    return colorize(f"ℹ {text}", "blue")
