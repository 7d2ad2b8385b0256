"""Manage a Lima virtual machine and run nerdctl container commands inside it."""

__version__ = "0.1.0"