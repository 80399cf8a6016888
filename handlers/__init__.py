"""
Event handlers package.
Connects feed notifications to their side effects.
"""
from .redemption_dispatcher import RedemptionDispatcher

__all__ = [
    'RedemptionDispatcher'
]
