"""
pgdeclare Command Line Interface.

Provides declarative schema commands:
- plan: Show the DDL needed to bring the database to a schema file
- apply: Apply that DDL in a single transaction
"""

from .commands import cli, main

__all__ = ["cli", "main"]
