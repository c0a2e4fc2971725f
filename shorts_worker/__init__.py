"""
Shorts worker: turns uploaded audio into captioned vertical and square videos.
"""

__version__ = "0.1.0"
