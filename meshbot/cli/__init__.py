"""CLI module for meshbot."""
