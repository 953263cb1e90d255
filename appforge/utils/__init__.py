"""Utility functions and classes for appforge."""

from appforge.utils.exceptions import (
    AppForgeError,
    ConfigurationError,
    ManagerError,
    ManagerInitializationError,
    ManagerShutdownError,
    RecipeError,
    StageAbortError,
    WorkspaceError,
)
