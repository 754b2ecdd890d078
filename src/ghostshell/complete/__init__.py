"""Autocomplete collaborators."""

from ghostshell.complete.dictionary import Autocompleter, CommandDictionary

__all__ = ["Autocompleter", "CommandDictionary"]
