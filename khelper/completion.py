"""Shell detection, completion install paths and auto-install policy."""

from __future__ import annotations

import os
import sys
from pathlib import Path
from typing import Mapping, Optional, Sequence, Union

SUPPORTED_SHELLS = ("bash", "zsh", "fish", "powershell")
AUTO_COMPLETION_ENV = "KHELPER_AUTO_COMPLETION"

_SHELL_ALIASES = {
    "bash": "bash",
    "zsh": "zsh",
    "fish": "fish",
    "powershell": "powershell",
    "pwsh": "powershell",
}

_COMPLETION_COMMANDS = frozenset(
    {"__complete", "__completeNoDesc", "completion", "completion-install", "comp-install"}
)

_WINDOWS_PLATFORMS = ("windows", "win32", "cygwin")


def _quote(text: str) -> str:
    escaped = text.replace("\\", "\\\\").replace('"', '\\"')
    return f'"{escaped}"'


def _home(home: Optional[str]) -> str:
    if home is not None:
        return home
    try:
        return str(Path.home())
    except RuntimeError:
        return ""


def normalize_shell_name(name: str) -> str:
    """The canonical shell name for a name or path; empty when unsupported."""
    base = os.path.basename(name.strip()).lower()
    return _SHELL_ALIASES.get(base, "")


def detect_shell_from_env(environ: Optional[Mapping[str, str]] = None) -> str:
    """The SHELL variable, trimmed; raises when it is not set."""
    if environ is None:
        environ = os.environ
    shell = environ.get("SHELL", "").strip()
    if not shell:
        raise ValueError(
            "cannot detect shell from SHELL; pass it explicitly, "
            "e.g. 'khelper completion-install bash'"
        )
    return shell


def resolve_shell(
    shell_flag: str,
    args: Sequence[str] = (),
    environ: Optional[Mapping[str, str]] = None,
) -> str:
    """Pick the shell from the argument, the --shell flag or the environment."""
    shell_name = args[0] if args else shell_flag
    if not shell_name:
        shell_name = detect_shell_from_env(environ)
    normalized = normalize_shell_name(shell_name)
    if not normalized:
        raise ValueError("unsupported shell (supported: bash|zsh|fish|powershell)")
    return normalized


def default_completion_install_path(
    shell_name: str,
    home: Optional[str] = None,
    platform: Optional[str] = None,
) -> str:
    """The conventional completion file location for a shell."""
    home_dir = _home(home)
    if not home_dir:
        raise ValueError("cannot determine home directory; use --path")
    if platform is None:
        platform = sys.platform

    if shell_name == "bash":
        return os.path.join(home_dir, ".local", "share", "bash-completion", "completions", "khelper")
    if shell_name == "zsh":
        return os.path.join(home_dir, ".zfunc", "_khelper")
    if shell_name == "fish":
        return os.path.join(home_dir, ".config", "fish", "completions", "khelper.fish")
    if shell_name == "powershell":
        if platform.lower() not in _WINDOWS_PLATFORMS:
            raise ValueError(
                f"default PowerShell completion path is not defined on {platform}; use --path"
            )
        return os.path.join(home_dir, "Documents", "PowerShell", "Completions", "khelper.ps1")
    raise ValueError(f"unsupported shell {_quote(shell_name)}")


def expand_home(path: str, home: Optional[str] = None) -> str:
    """Expand a leading "~" or "~/" to the home directory."""
    if not path or not path.startswith("~"):
        return path
    home_dir = _home(home)
    if not home_dir:
        raise ValueError(f"cannot resolve '~' in path {_quote(path)}")
    if path == "~":
        return home_dir
    if path.startswith("~/"):
        return os.path.join(home_dir, path[2:])
    raise ValueError(f"unsupported home expansion in path {_quote(path)}")


def completion_hint(shell_name: str, install_path: str) -> str:
    """What to tell the user after installing completion; empty for unknown shells."""
    if shell_name == "bash":
        return f"Open a new shell, or run:\nsource {_quote(install_path)}\n"
    if shell_name == "zsh":
        return (
            "Ensure ~/.zfunc is in fpath and run 'autoload -Uz compinit && compinit' "
            "(or open a new shell).\n"
        )
    if shell_name == "fish":
        return "Open a new fish shell session to load completion automatically.\n"
    if shell_name == "powershell":
        return (
            "Reload your PowerShell profile and dot-source the file if needed: "
            f". {_quote(install_path)}\n"
        )
    return ""


def is_completion_command(command_path: Union[str, Sequence[str]]) -> bool:
    """Whether any command on the path is a completion command."""
    names = command_path.split() if isinstance(command_path, str) else command_path
    return any(name in _COMPLETION_COMMANDS for name in names)


def should_auto_install_completion(
    environ: Optional[Mapping[str, str]],
    command_path: Union[str, Sequence[str]],
    interactive: bool,
) -> bool:
    """Whether completion should be installed silently for this run."""
    if environ is None:
        environ = os.environ
    if environ.get(AUTO_COMPLETION_ENV) == "0":
        return False
    if environ.get("CI", ""):
        return False
    if not interactive:
        return False
    return not is_completion_command(command_path)