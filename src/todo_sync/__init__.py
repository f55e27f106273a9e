"""Offline-first synchronisation of plain-text todo lists with Dropbox."""

__version__ = "0.3.0"
