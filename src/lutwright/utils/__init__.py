"""
LUTWright Utilities Package
File naming, YAML configuration files and structured logging.
"""

from .config_file import ConfigFileManager, get_config_manager
from .files import (
    batch_output_path,
    expand_image_paths,
    is_image_file,
    watch_output_path,
)
from .logging import (
    LogConfig,
    configure_from_cli,
    configure_logging,
    get_logger,
)

__all__ = [
    # Config files
    'ConfigFileManager',
    'get_config_manager',
    # File naming
    'batch_output_path',
    'expand_image_paths',
    'is_image_file',
    'watch_output_path',
    # Logging
    'LogConfig',
    'configure_from_cli',
    'configure_logging',
    'get_logger',
]
