"""
TimeCraft: compliant legal billing narratives from short time entries.
"""

__version__ = "0.1.0"
