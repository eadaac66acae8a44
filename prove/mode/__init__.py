# AGPL-3.0 License

"""
Delivery-mode resolution.
"""

from prove.mode.resolver import DeliveryMode, ModeResolution, TaskDeclaration, resolve_mode

__all__ = ["DeliveryMode", "ModeResolution", "TaskDeclaration", "resolve_mode"]
