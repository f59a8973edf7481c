# backend/merchant_rules/core/log_config.py
import logging

from merchant_rules.core.config import settings

LOG_FORMAT = "%(asctime)s %(levelname)s [%(name)s] %(message)s"


def configure_logging(level: str | None = None) -> None:
    """配置根日志记录器

    未指定 level 时使用 settings.LOG_LEVEL
    """
    level_name = (level or settings.LOG_LEVEL).upper()
    logging.basicConfig(level=getattr(logging, level_name, logging.INFO), format=LOG_FORMAT)

    # SQLAlchemy 的引擎日志只在 DEBUG 下输出
    if level_name != "DEBUG":
        logging.getLogger("sqlalchemy.engine").setLevel(logging.WARNING)
