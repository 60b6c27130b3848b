"""
FieldTrack - Field Personnel Movement Tracking API

Occupational-safety backend: records the trips of field inspectors and
engineers, aggregates them per day, month and identity, and exports
monthly reports.
"""

__version__ = "1.0.0"
