# Utils package
from .logging import setup_logger, get_logger, LogContext
from .config import (
    AnalysisConfig, ColumnConfig, PlaceboSettings,
    load_config, get_project_dir
)

__all__ = [
    # Logging
    'setup_logger', 'get_logger', 'LogContext',
    # Config
    'AnalysisConfig', 'ColumnConfig', 'PlaceboSettings',
    'load_config', 'get_project_dir'
]
