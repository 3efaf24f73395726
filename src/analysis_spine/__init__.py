"""
analysis-spine - orchestration and version reconciliation for remote analysis jobs.

- analysis_spine.core: data model, errors, logging, settings
- analysis_spine.execution: polling, progress projection, retries, deadlines
- analysis_spine.orchestration: analysis saga, mutation flow, session wiring
"""

__version__ = "0.1.0"
