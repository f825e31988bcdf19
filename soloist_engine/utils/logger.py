import logging
import logging.config
from pathlib import Path

def setup_logging(config) -> logging.Logger:
    """
    Настройка логирования движка по EngineConfig.get_logging_config():
    консоль и, если включено, RotatingFileHandler в logs/engine_<env>.log
    """
    if config.logs.to_file:
        Path(config.logs.log_dir).mkdir(parents=True, exist_ok=True)
    logging.config.dictConfig(config.get_logging_config())
    return logging.getLogger("soloist_engine")
