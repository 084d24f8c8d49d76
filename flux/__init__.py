"""
Flux System Administration Framework
------------------------------------

Discovers server setup modules by filename convention and runs them, alone or
as named workflows, with timeouts, prompts and a summary of the outcome.
"""

APP_NAME: str = "Flux"
VERSION: str = "3.0.0"
RELEASE: str = "2025.05"

__version__ = VERSION
