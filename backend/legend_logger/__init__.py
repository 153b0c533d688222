"""
Legend Logger - photographed game maps with character tokens
"""
__version__ = "0.1.0"
