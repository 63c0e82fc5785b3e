"""Read-only analysis of Claude Code JSONL session logs."""

__version__ = "0.1.0"
