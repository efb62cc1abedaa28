"""
Staff directory sample application built on personnel.
"""

from .demo import bootstrap_database, project_roster, run_demo, seed_sample_data

__all__ = ["bootstrap_database", "project_roster", "run_demo", "seed_sample_data"]
