"""structlog 日志配置

日志只写 stderr，stdout 留给生成的脚本，``eval "$(envswitch ...)"`` 不会混入日志。
shell hook 在后台调用 envswitch 时无法加 ``--verbose``，可以用 ``ENVSWITCH_LOG_LEVEL=debug``。
"""

from __future__ import annotations

import logging
import os
import sys
from typing import List, Optional

import structlog

LOG_LEVEL_ENV_VAR = "ENVSWITCH_LOG_LEVEL"


def _resolve_level(verbose: bool, override: Optional[str]) -> int:
    if verbose:
        return logging.DEBUG
    if override:
        level = logging.getLevelName(override.strip().upper())
        if isinstance(level, int):
            return level
    return logging.WARNING


def _processors(log_json: bool) -> List[structlog.types.Processor]:
    processors: List[structlog.types.Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
    ]
    # 终端输出不带时间戳，一次命令只有几行日志
    if log_json:
        processors.append(structlog.processors.TimeStamper(fmt="iso"))
    processors.append(structlog.processors.UnicodeDecoder())
    return processors


def configure_logging(*, verbose: bool = False, log_json: bool = False) -> None:
    """安装 stderr handler

    --verbose 优先于 ENVSWITCH_LOG_LEVEL；都没有时只输出 WARNING 及以上（占位符未解析、扫描目录不可读等）。
    """
    level = _resolve_level(verbose, os.environ.get(LOG_LEVEL_ENV_VAR))
    shared = _processors(log_json)

    if log_json:
        renderer: structlog.types.Processor = structlog.processors.JSONRenderer()
    else:
        renderer = structlog.dev.ConsoleRenderer(colors=sys.stderr.isatty(), pad_event=0)

    structlog.configure(
        processors=[*shared, structlog.stdlib.ProcessorFormatter.wrap_for_formatter],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=False,
    )

    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(structlog.stdlib.ProcessorFormatter(
        foreign_pre_chain=shared,
        processors=[structlog.stdlib.ProcessorFormatter.remove_processors_meta, renderer],
    ))

    root_logger = logging.getLogger()
    root_logger.handlers.clear()
    root_logger.addHandler(handler)
    root_logger.setLevel(logging.WARNING)

    logging.getLogger("envswitch").setLevel(level)
