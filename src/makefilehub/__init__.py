"""Build-system task runner for Makefile, justfile and shell script projects."""

__version__ = "0.1.0"
