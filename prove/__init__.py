# AGPL-3.0 License

"""
prove - quality-gate orchestrator.

Runs a configurable battery of verification checks against a working
tree and reports a deterministic, machine-readable result.
"""

__version__ = "0.1.0"
