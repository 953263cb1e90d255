from __future__ import annotations

import json
import os
import pathlib
import platform
from typing import Any, Dict, List, Optional, Set, Union

import yaml
from pydantic import BaseModel, Field, ValidationError, model_validator

from appforge.core.base import AppForgeManager
from appforge.utils.exceptions import ConfigurationError, ManagerInitializationError


class ConfigSchema(BaseModel):
    """Schema for validating configuration data.

    This model defines the expected structure and default values for the
    build tool configuration.
    """
    workspace: Dict[str, Any] = Field(
        default_factory=lambda: {
            'root': '/',
        },
        description='Workspace location; every other path is derived from the root',
    )
    build: Dict[str, Any] = Field(
        default_factory=lambda: {
            'privilege_command': 'sudo',
            'mask_chain_failures': True,
            'root_build_component': 'cpan',
        },
        description='Build executor settings',
    )
    sources: Dict[str, Any] = Field(
        default_factory=lambda: {
            'download_timeout': 300.0,
        },
        description='Source resolver settings',
    )
    frameworks: Dict[str, Any] = Field(
        default_factory=lambda: {
            'url_template': 'https://anongit.kde.org/{name}',
            'options': '-DCMAKE_INSTALL_PREFIX:PATH={prefix} -DBUILD_TESTING=OFF',
            'special_options': {
                'phonon': (
                    '-DCMAKE_INSTALL_PREFIX:PATH={prefix} -DBUILD_TESTING=OFF '
                    '-DPHONON_BUILD_PHONON4QT5=ON'
                ),
            },
        },
        description='Framework set settings',
    )
    integration: Dict[str, Any] = Field(
        default_factory=lambda: {
            'functions_dir': None,
            'runtime_toolkit_url': 'https://github.com/probonopd/AppImageKit',
        },
        description='Desktop and runtime integration settings',
    )
    artifact: Dict[str, Any] = Field(
        default_factory=lambda: {
            'template': None,
            'extension': 'AppImage',
            'arch': platform.machine() or 'x86_64',
        },
        description='Final artifact settings',
    )
    version: Dict[str, Any] = Field(
        default_factory=lambda: {
            'tag_prefix': 'release-',
        },
        description='Version derivation settings',
    )
    pipeline: Dict[str, Any] = Field(
        default_factory=lambda: {
            'teardown': True,
        },
        description='Pipeline settings',
    )
    logging: Dict[str, Any] = Field(
        default_factory=lambda: {
            'level': 'INFO',
            'format': 'text',
            'file': {
                'enabled': False,
                'path': 'logs/appforge.log',
                'rotation': '10 MB',
                'retention': '30 days',
            },
            'console': {
                'enabled': True,
                'level': 'INFO',
            },
        },
        description='Logging settings',
    )

    @model_validator(mode='after')
    def validate_build(self) -> 'ConfigSchema':
        """Validate the build executor settings."""
        if not isinstance(self.build.get('mask_chain_failures'), bool):
            raise ValueError('build.mask_chain_failures must be a boolean.')
        if not isinstance(self.build.get('privilege_command', ''), str):
            raise ValueError('build.privilege_command must be a string.')
        return self

    @model_validator(mode='after')
    def validate_frameworks(self) -> 'ConfigSchema':
        """Validate that the framework URL template names the framework."""
        if '{name}' not in str(self.frameworks.get('url_template', '')):
            raise ValueError('frameworks.url_template must contain a {name} placeholder.')
        return self


class ConfigManager(AppForgeManager):
    """Configuration manager for appforge.

    This manager handles loading, validating, and providing access to
    configuration settings from files and environment variables.

    Attributes:
        _config_path: Path to the configuration file
        _env_prefix: Prefix for environment variables
        _config: The loaded configuration
        _loaded_from_file: Whether configuration was loaded from a file
        _env_vars_applied: Set of applied environment variables
    """

    ENV_SEPARATOR = '__'

    def __init__(
            self,
            config_path: Optional[Union[str, pathlib.Path]] = None,
            env_prefix: str = 'APPFORGE_',
            overrides: Optional[Dict[str, Any]] = None,
    ) -> None:
        """Initialize the configuration manager.

        Args:
            config_path: Path to the configuration file
            env_prefix: Prefix for environment variables
            overrides: Dotted keys applied last, typically from the command line
        """
        super().__init__(name='config_manager')
        self._config_path = pathlib.Path(config_path) if config_path else pathlib.Path('appforge.yaml')
        self._env_prefix = env_prefix
        self._overrides = dict(overrides or {})
        self._config: Dict[str, Any] = {}
        self._loaded_from_file = False
        self._env_vars_applied: Set[str] = set()

    def initialize(self) -> None:
        """Initialize the configuration manager.

        Loads configuration from default schema, file, environment variables
        and explicit overrides, in that order.

        Raises:
            ManagerInitializationError: If initialization fails
        """
        try:
            self._config = ConfigSchema().model_dump()
            self._load_from_file()
            self._apply_env_vars()
            for key, value in self._overrides.items():
                self._set_nested_value(self._config, key.split('.'), value)
            self._validate_config()

            self._initialized = True
            self._healthy = True
        except Exception as e:
            raise ManagerInitializationError(
                f'Failed to initialize ConfigManager: {str(e)}',
                manager_name=self.name
            ) from e

    def _load_from_file(self) -> None:
        """Load configuration from a file.

        Raises:
            ConfigurationError: If the file cannot be parsed
        """
        if not self._config_path.exists():
            return

        try:
            content = self._config_path.read_text(encoding='utf-8')

            if self._config_path.suffix.lower() in ('.yaml', '.yml'):
                file_config = yaml.safe_load(content)
            elif self._config_path.suffix.lower() == '.json':
                file_config = json.loads(content)
            else:
                raise ConfigurationError(
                    f'Unsupported config file format: {self._config_path.suffix}',
                    config_key='config_path'
                )

            if file_config:
                self._merge_config(file_config)
                self._loaded_from_file = True
        except (yaml.YAMLError, json.JSONDecodeError) as e:
            raise ConfigurationError(
                f'Error parsing config file {self._config_path}: {str(e)}',
                config_key='config_path'
            ) from e

    def _apply_env_vars(self) -> None:
        """Apply environment variables to the configuration.

        ``APPFORGE_BUILD__PRIVILEGE_COMMAND`` maps to ``build.privilege_command``.
        """
        for env_name, env_value in os.environ.items():
            if not env_name.startswith(self._env_prefix):
                continue

            config_path = env_name[len(self._env_prefix):].lower().split(self.ENV_SEPARATOR)
            self._set_nested_value(self._config, config_path, self._parse_env_value(env_value))
            self._env_vars_applied.add(env_name)

    @staticmethod
    def _parse_env_value(value: str) -> Any:
        """Parse environment variable values into appropriate types.

        Args:
            value: The string value from the environment

        Returns:
            The parsed value (bool, int, float, or string)
        """
        if value.lower() in ('true', 'yes', 'on'):
            return True
        if value.lower() in ('false', 'no', 'off'):
            return False

        try:
            if value.isdigit() or (value.startswith('-') and value[1:].isdigit()):
                return int(value)
            return float(value)
        except ValueError:
            return value

    def _set_nested_value(self, config: Dict[str, Any], path: List[str], value: Any) -> None:
        """Set a nested value in the configuration dictionary.

        Args:
            config: The configuration dictionary
            path: List of keys forming the path to the value
            value: The value to set
        """
        if not path:
            return

        if len(path) == 1:
            config[path[0]] = value
            return

        key = path[0]
        if key not in config or not isinstance(config[key], dict):
            config[key] = {}

        self._set_nested_value(config[key], path[1:], value)

    def _validate_config(self) -> None:
        """Validate the configuration against the schema.

        Raises:
            ConfigurationError: If the configuration is invalid
        """
        try:
            self._config = ConfigSchema(**self._config).model_dump()
        except ValidationError as e:
            errors = e.errors()
            error_details = ', '.join((
                f"{'.'.join((str(loc) for loc in error['loc']))}: {error['msg']}"
                for error in errors
            ))
            raise ConfigurationError(
                f'Invalid configuration: {error_details}',
                details={'validation_errors': errors}
            ) from e

    def get(self, key: str, default: Any = None) -> Any:
        """Get a configuration value by key.

        Args:
            key: The configuration key (dot-separated for nested values)
            default: Default value if the key doesn't exist

        Returns:
            The configuration value or default

        Raises:
            ConfigurationError: If the manager isn't initialized
        """
        if not self._initialized:
            raise ConfigurationError(
                'Cannot access configuration before initialization',
                config_key=key
            )

        result: Any = self._config
        try:
            for part in key.split('.'):
                result = result[part]
            return result
        except (KeyError, TypeError):
            return default

    def _merge_config(
            self,
            from_config: Dict[str, Any],
            to_config: Optional[Dict[str, Any]] = None
    ) -> None:
        """Merge a configuration dictionary into another.

        Args:
            from_config: The source configuration
            to_config: The target configuration (defaults to self._config)
        """
        if to_config is None:
            to_config = self._config

        for key, value in from_config.items():
            if key in to_config and isinstance(to_config[key], dict) and isinstance(value, dict):
                self._merge_config(value, to_config[key])
            else:
                to_config[key] = value

    def shutdown(self) -> None:
        """Shut down the configuration manager."""
        self._initialized = False
        self._healthy = False

    def status(self) -> Dict[str, Any]:
        """Get the status of the configuration manager.

        Returns:
            Dictionary with status information
        """
        status = super().status()
        status.update({
            'config_file': str(self._config_path) if self._loaded_from_file else None,
            'loaded_from_file': self._loaded_from_file,
            'env_vars_applied': len(self._env_vars_applied),
        })
        return status
