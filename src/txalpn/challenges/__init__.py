from ._tls import TLSALPN01Responder


__all__ = ['TLSALPN01Responder']
