"""
smart-codebase: knowledge persistence for AI coding sessions.

Stores short facts learned while coding next to the code they describe,
links related facts into a graph, and surfaces them when a file is read.
"""

__version__ = "0.1.0"
