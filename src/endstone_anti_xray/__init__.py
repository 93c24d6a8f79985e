"""
Anti-Xray for Endstone
Alerts staff when players mine valuable blocks faster than is plausible without x-ray.
"""

__version__ = "1.0.0"
