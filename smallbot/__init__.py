"""smallbot - a tool-calling chat bot that streams answers into one live message."""

__version__ = "0.3.0"
