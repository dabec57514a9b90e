"""
CLI layer for jobspine (requires the ``cli`` extra).

Entry point::

    jobspine --help
"""

from jobspine.cli.app import app

__all__ = ["app"]
