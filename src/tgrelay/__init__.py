"""tgrelay: ask a Telegram chat questions from an MCP client."""

from __future__ import annotations

__version__ = "0.2.1"
