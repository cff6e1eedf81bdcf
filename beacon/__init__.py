"""
Beacon Analytics API

Event collection and cached aggregate reporting for registered web applications.
"""

__version__ = "0.1.0"
