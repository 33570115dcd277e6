"""Dotfile picker: resolve, preview, back up and apply creator dotfiles."""

__version__ = "0.1.0"
