from __future__ import annotations

from typing import TYPE_CHECKING, Any, Optional

if TYPE_CHECKING:
    from appforge.build.results import StageResult


class AppForgeError(Exception):
    """Base exception for all appforge errors."""

    def __init__(self, message: str, **kwargs: Any) -> None:
        """
        Initialize exception.

        Args:
            message: Error message
            **kwargs: Additional error information
        """
        self.message = message
        self.details = kwargs
        super().__init__(message)

    def __str__(self) -> str:
        """String representation."""
        return f"{self.message}"


class ManagerError(AppForgeError):
    """Base exception for manager-related errors."""

    def __init__(self, message: str, manager_name: Optional[str] = None, **kwargs: Any) -> None:
        """
        Initialize manager error.

        Args:
            message: Error message
            manager_name: Name of the affected manager
            **kwargs: Additional error information
        """
        super().__init__(message, manager_name=manager_name, **kwargs)
        self.manager_name = manager_name

    def __str__(self) -> str:
        """String representation."""
        if self.manager_name:
            return f"{self.message} (Manager: {self.manager_name})"
        return super().__str__()


class ManagerInitializationError(ManagerError):
    """Exception raised when a manager fails to initialize."""

    pass


class ManagerShutdownError(ManagerError):
    """Exception raised when a manager fails to shut down cleanly."""

    pass


class ConfigurationError(AppForgeError):
    """Exception raised for configuration-related errors."""

    def __init__(
            self, message: str, *args: Any, config_key: Optional[str] = None, **kwargs: Any
    ) -> None:
        """Initialize a ConfigurationError.

        Args:
            message: A descriptive error message.
            *args: Additional positional arguments to pass to the parent Exception.
            config_key: The configuration key that caused the error.
            **kwargs: Additional keyword arguments to pass to the parent Exception.
        """
        details = kwargs.pop("details", {})
        if config_key:
            details["config_key"] = config_key
        super().__init__(message, *args, details=details, **kwargs)


class RecipeError(AppForgeError):
    """Exception raised when a recipe cannot be loaded or validated."""

    def __init__(
            self, message: str, *args: Any, recipe_path: Optional[str] = None, **kwargs: Any
    ) -> None:
        """Initialize a RecipeError.

        Args:
            message: A descriptive error message.
            *args: Additional positional arguments to pass to the parent Exception.
            recipe_path: The recipe file that caused the error.
            **kwargs: Additional keyword arguments to pass to the parent Exception.
        """
        details = kwargs.pop("details", {})
        if recipe_path:
            details["recipe_path"] = recipe_path
        super().__init__(message, *args, details=details, **kwargs)


class WorkspaceError(AppForgeError):
    """Exception raised for workspace directory errors."""

    def __init__(
            self, message: str, *args: Any, path: Optional[str] = None, **kwargs: Any
    ) -> None:
        """Initialize a WorkspaceError.

        Args:
            message: A descriptive error message.
            *args: Additional positional arguments to pass to the parent Exception.
            path: The workspace path that caused the error.
            **kwargs: Additional keyword arguments to pass to the parent Exception.
        """
        details = kwargs.pop("details", {})
        if path:
            details["path"] = path
        super().__init__(message, *args, details=details, **kwargs)


class StageAbortError(AppForgeError):
    """Raised by a pipeline stage to stop the run.

    The failing ``StageResult`` travels with the exception so the orchestrator
    can report it verbatim.
    """

    def __init__(self, result: StageResult) -> None:
        super().__init__(
            result.message or f"Stage {result.stage} failed",
            stage=result.stage,
            status=result.status,
            kind=result.kind.value,
        )
        self.result = result

    def __str__(self) -> str:
        """String representation."""
        return f"{self.message} (Stage: {self.result.stage}, status {self.result.status})"
