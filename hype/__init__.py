"""
Hype Protocol client library
Account decoders, log-event decoder, bonding curve engine and instruction encoder
"""

__version__ = "0.1.0"
