"""Kubernetes helper logic: diagnostic rules, event scoping, pod summaries, image-update parsing, settings and exit codes."""

__version__ = "0.1.0"