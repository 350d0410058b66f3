"""Statter: periodic HTTP service monitoring with queryable history."""

__version__ = "0.2.0"
