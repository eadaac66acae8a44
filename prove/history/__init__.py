# AGPL-3.0 License

"""
Run history and performance-regression detection.
"""

from prove.history.collector import Regression, RunHistoryStore

__all__ = ["Regression", "RunHistoryStore"]
