"""对外 API 服务模块。

提供简化的函数接口供宿主（linter、IDE 扩展等）调用：
构建一次 LmContext，然后对一批属性执行全部命名规则。
"""

from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional

from lm_core.config.settings import settings
from lm_core.infrastructure.logging.logger import logger
from lm_core.infrastructure.storage.lm_cache import LmCache
from lm_core.lm.context import LmContext
from lm_core.providers import create_provider
from lm_core.rules import PropertyInfo, RuleContext, run_rules


def build_context(
    project_root: Optional[str] = None,
    connection_string: Optional[str] = None,
) -> LmContext:
    """构建一次会话使用的上下文。

    Args:
        project_root: 项目根目录，缓存文件放在其下；为空时只使用内存缓存。
        connection_string: Provider 连接串（可选，默认读配置/环境变量）。
    """

    provider = create_provider(connection_string)
    cache_path = Path(project_root).expanduser() / settings.lm_cache_file_name if project_root else None
    return LmContext(provider=provider, cache=LmCache(cache_path))


def lint_properties(
    properties: Iterable[PropertyInfo],
    project_root: Optional[str] = None,
    connection_string: Optional[str] = None,
    context: Optional[LmContext] = None,
    timeout: Optional[float] = None,
) -> List[Dict[str, Any]]:
    """对属性执行全部规则并返回诊断列表。

    timeout 为空时等待全部检查完成；否则超时后放弃剩余检查，只返回已得到的诊断。

    Returns:
        诊断字典列表，每项包含 rule_id, severity, target, message_id, message, suggestions
    """

    lm = context or build_context(project_root, connection_string)
    if not lm.available:
        logger.warning("Language model is not available, rules will report it once")
    diagnostics = run_rules(properties, RuleContext(lm), timeout=timeout)
    logger.info("lint_properties.done", extra={"extra": {"diagnostics": len(diagnostics)}})
    return [d.to_dict() for d in diagnostics]
