"""
Data mappers package.
Transforms raw feed payloads into domain events.
"""
from .redemption_mapper import RedemptionMapper, parse_timestamp

__all__ = [
    'RedemptionMapper',
    'parse_timestamp'
]
