"""
CLI layer for buildspine.

Terminal transport only: argument parsing, coloured output and table
formatting. Planning and building live in ``buildspine.build``.

Entry point::

    buildspine --help
"""

from buildspine.cli.app import app

__all__ = ["app"]
