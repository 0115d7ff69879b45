"""
filecourier - Encrypted single-file transfer between two peers.
"""

__version__ = "0.1.0"
