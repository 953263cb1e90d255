"""Command-line interface for the appforge build pipeline.

This module provides commands to run a packaging pipeline from a recipe,
clean a workspace before a retry, and validate a recipe file.
"""

from __future__ import annotations

import argparse
import sys
from typing import Any, Dict, List, Optional

from appforge.build.orchestrator import PipelineOrchestrator
from appforge.build.recipe import load_recipe, missing_packaging_tool
from appforge.build.workspace import WorkspaceContext
from appforge.core.config_manager import ConfigManager
from appforge.core.logging_manager import LoggingManager
from appforge.utils.exceptions import AppForgeError


def _config_overrides(args: argparse.Namespace) -> Dict[str, Any]:
    overrides: Dict[str, Any] = {}
    if getattr(args, "workspace_root", None):
        overrides["workspace.root"] = args.workspace_root
    if getattr(args, "no_mask", False):
        overrides["build.mask_chain_failures"] = False
    if getattr(args, "no_teardown", False):
        overrides["pipeline.teardown"] = False
    if getattr(args, "log_level", None):
        overrides["logging.level"] = args.log_level
        overrides["logging.console.level"] = args.log_level
    return overrides


def _load_config(args: argparse.Namespace) -> ConfigManager:
    config_manager = ConfigManager(config_path=args.config, overrides=_config_overrides(args))
    config_manager.initialize()
    return config_manager


def build_command(args: argparse.Namespace) -> int:
    """Handle the build command.

    Args:
        args: Command-line arguments

    Returns:
        The pipeline status (0 for success, the failing stage's status otherwise)
    """
    logging_manager: Optional[LoggingManager] = None
    try:
        config_manager = _load_config(args)
        logging_manager = LoggingManager(config_manager)
        logging_manager.initialize()

        recipe = load_recipe(args.recipe)
        orchestrator = PipelineOrchestrator.from_config(
            recipe,
            config_manager,
            logger=logging_manager.get_logger("appforge.pipeline"),
        )
        result = orchestrator.run()

        failure = result.failure
        if failure is None:
            print(f"Built {recipe.name} {result.version}: {result.artifact_path}")
            return 0

        component = f" [{failure.component}]" if failure.component else ""
        print(
            f"Stage {failure.stage}{component} failed ({failure.kind.value}, "
            f"status {failure.status}): {failure.message}",
            file=sys.stderr,
        )
        return failure.status

    except AppForgeError as e:
        print(f"Error running build: {e}", file=sys.stderr)
        return 1

    finally:
        if logging_manager is not None:
            logging_manager.shutdown()


def clean_command(args: argparse.Namespace) -> int:
    """Handle the clean command.

    Args:
        args: Command-line arguments

    Returns:
        Exit code (0 for success, non-zero for failure)
    """
    try:
        config_manager = _load_config(args)
        name = args.name
        if args.recipe:
            name = load_recipe(args.recipe).name
        if not name:
            print("Either --name or --recipe is required to locate the bundle directory.", file=sys.stderr)
            return 1

        workspace = WorkspaceContext.create(config_manager.get("workspace.root", "/"), name)
        leftovers = workspace.clean()
        if leftovers:
            for path in leftovers:
                print(f"Not empty after cleaning: {path}", file=sys.stderr)
            return 1

        print(f"Cleaned workspace at {workspace.root}")
        return 0

    except AppForgeError as e:
        print(f"Error cleaning workspace: {e}", file=sys.stderr)
        return 1


def validate_command(args: argparse.Namespace) -> int:
    """Handle the validate command.

    Args:
        args: Command-line arguments

    Returns:
        Exit code (0 when the recipe is valid, 1 otherwise)
    """
    try:
        recipe = load_recipe(args.recipe)
    except AppForgeError as e:
        print(f"Invalid recipe: {e}", file=sys.stderr)
        return 1

    problems = missing_packaging_tool(recipe)
    print(f"Recipe: {recipe.name}")
    print(f"  Dependencies: {', '.join(d.dep_name for d in recipe.dependencies) or '(none)'}")
    if recipe.frameworks.enabled:
        print(f"  Frameworks: {', '.join(recipe.frameworks.members) or '(none)'}")

    if problems:
        print("ERRORS:")
        for problem in problems:
            print(f"  - {problem}")
        return 1
    return 0


def main(args: Optional[List[str]] = None) -> int:
    """Main entry point for the command-line interface.

    Args:
        args: Command-line arguments (defaults to sys.argv[1:])

    Returns:
        Exit code (0 for success, non-zero for failure)
    """
    parser = argparse.ArgumentParser(
        description="appforge - build portable application bundles",
        formatter_class=argparse.ArgumentDefaultsHelpFormatter
    )

    subparsers = parser.add_subparsers(dest="command", help="Command to execute")

    # Build command
    build_parser = subparsers.add_parser("build", help="Run the packaging pipeline for a recipe")
    build_parser.add_argument("recipe", help="Recipe file (YAML or JSON)")
    build_parser.add_argument("--config", help="Path to configuration file")
    build_parser.add_argument("--workspace-root", help="Workspace root directory")
    build_parser.add_argument("--no-mask", action="store_true",
                              help="Stop a build chain at its first failing command")
    build_parser.add_argument("--no-teardown", action="store_true",
                              help="Keep the assembly tree after a successful run")
    build_parser.add_argument("--log-level", choices=["DEBUG", "INFO", "WARNING", "ERROR"],
                              help="Log level")

    # Clean command
    clean_parser = subparsers.add_parser("clean", help="Empty the workspace before a new run")
    clean_parser.add_argument("--config", help="Path to configuration file")
    clean_parser.add_argument("--workspace-root", help="Workspace root directory")
    clean_parser.add_argument("--name", help="Project name (locates the bundle directory)")
    clean_parser.add_argument("--recipe", help="Recipe file to read the project name from")

    # Validate command
    validate_parser = subparsers.add_parser("validate", help="Validate a recipe file")
    validate_parser.add_argument("recipe", help="Recipe file (YAML or JSON)")

    args = parser.parse_args(args)

    if args.command == "build":
        return build_command(args)
    elif args.command == "clean":
        return clean_command(args)
    elif args.command == "validate":
        return validate_command(args)
    else:
        parser.print_help()
        return 1


if __name__ == "__main__":
    sys.exit(main())
