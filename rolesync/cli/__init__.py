"""Command-line interface for rolesync."""
