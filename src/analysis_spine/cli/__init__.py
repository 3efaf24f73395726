"""
CLI layer for analysis-spine.

Provides a Typer application whose commands delegate to
``AnalysisSession``. This package handles only terminal transport:
argument parsing, state-file handling and coloured output.

Entry point::

    analysis-spine --help
"""

from analysis_spine.cli.app import app

__all__ = ["app"]
