"""jobpilot: automation and follow-up reminder engine for job-search tracking."""

__version__ = "0.1.0"
