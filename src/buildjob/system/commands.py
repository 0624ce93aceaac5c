"""
Build command and environment preparation utilities.

This module provides functions for assembling the shell command line that
installs and builds the project, and for preparing the environment passed to
that shell.
"""

import logging
import os
import shlex
from pathlib import Path
from typing import Dict, Mapping, Optional

logger = logging.getLogger(__name__)


def prepare_command_with_setup(main_command: str, setup_command: Optional[str]) -> str:
    """Combine a main command with an optional setup command.

    Args:
        main_command: The primary command to execute.
        setup_command: Optional command that must succeed first
            (e.g., "npm install").

    Returns:
        The combined command string.

    Examples:
        >>> prepare_command_with_setup("npm run build", "npm install")
        'npm install && npm run build'
        >>> prepare_command_with_setup("make", None)
        'make'
    """
    if setup_command:
        return f"{setup_command} && {main_command}"
    return main_command


def prepare_build_command(install_command: str, build_command: str, output_dir: Path) -> str:
    """Prepare the complete install + build command line.

    The shell first changes into the output directory, then runs the install
    command and, only if it succeeds, the build command.

    Args:
        install_command: Command installing the project's dependencies.
        build_command: Command producing the build artifacts.
        output_dir: Directory the commands run in.

    Returns:
        The final shell command string.
    """
    install_and_build = prepare_command_with_setup(build_command, install_command)
    return f"cd {shlex.quote(str(output_dir))} && {install_and_build}"


def get_project_environment(prefix: str,
                            environ: Optional[Mapping[str, str]] = None) -> Dict[str, str]:
    """Select the project-specific variables from an environment.

    Args:
        prefix: Variable name prefix, e.g. ``PROJECT_ENVIRONMENT_``.
        environ: Environment to filter (defaults to os.environ).

    Returns:
        Mapping of every variable whose name starts with the prefix.
    """
    source = os.environ if environ is None else environ
    return {key: value for key, value in source.items() if key.startswith(prefix)}


def prepare_build_environment(prefix: str,
                              environ: Optional[Mapping[str, str]] = None) -> Dict[str, str]:
    """Prepare the environment for the build subprocess.

    The build sees the ambient environment with the project-specific
    variables layered on top.

    Args:
        prefix: Project variable name prefix.
        environ: Ambient environment (defaults to os.environ).

    Returns:
        The environment mapping for the subprocess.
    """
    source = os.environ if environ is None else environ
    env = dict(source)
    project_env = get_project_environment(prefix, source)
    env.update(project_env)
    logger.debug(f"Forwarding {len(project_env)} project environment variables to the build")
    return env
