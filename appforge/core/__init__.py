"""Core package containing the configuration and logging managers."""

from appforge.core.base import AppForgeManager
from appforge.core.config_manager import ConfigManager, ConfigSchema
from appforge.core.logging_manager import LoggingManager
