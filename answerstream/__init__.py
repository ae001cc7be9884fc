"""Top-level package for the AnswerStream streaming answer client."""

from .config import ConfigManager, StreamingSettings, get_user_config_dir  # noqa: F401
from .logging import setup_logging  # noqa: F401
