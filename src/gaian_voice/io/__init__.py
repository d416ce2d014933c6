"""
IO module for the user-facing front end.
"""

from gaian_voice.io.terminal_interface import TerminalInterface

__all__ = ["TerminalInterface"]
