"""Cascading multi-source search core for the civic assistant"""

__version__ = "1.0.0"
