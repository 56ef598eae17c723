"""
CLI package for curvefan

This package provides the command-line entry point that
runs the fan control loop.
"""

from .interface import main

__all__ = ['main']
