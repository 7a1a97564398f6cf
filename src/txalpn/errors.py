"""
Exception types for txalpn.
"""
import attr
from OpenSSL.SSL import Error


class HandshakeRejected(Error):
    """
    A TLS handshake was deliberately aborted by the certificate selection
    hook.

    Subclassing ``OpenSSL.SSL.Error`` lets the TLS transport treat this as
    an ordinary failed handshake for the single affected connection.  Like
    pyOpenSSL's own errors, ``args[0]`` is a list of ``(library, function,
    reason)`` tuples.
    """
    def __attrs_post_init__(self):
        Error.__init__(
            self, [(u'txalpn', u'select_certificate', repr(self))])


@attr.s
class UnknownServerName(HandshakeRejected):
    """
    A client asked for a challenge certificate for a server name that has no
    registered key authorization.
    """
    server_name = attr.ib()

    def __str__(self):
        return repr(self)


@attr.s
class ChallengeCertificateError(HandshakeRejected):
    """
    The challenge certificate for a server name could not be encoded or
    signed.
    """
    server_name = attr.ib()
    reason = attr.ib()

    def __str__(self):
        return repr(self)


__all__ = ['HandshakeRejected', 'UnknownServerName',
           'ChallengeCertificateError']
