"""
A TLS-ALPN-01 challenge test server for Twisted.
"""
__version__ = '0.1.0'
