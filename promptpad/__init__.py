"""PromptPad - keyboard-driven prompt launcher."""

__version__ = "0.1.0"
