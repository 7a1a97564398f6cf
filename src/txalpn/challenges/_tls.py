"""
``tls-alpn-01`` challenge implementation.
"""
import attr
from zope.interface import implementer

from txalpn.interfaces import IResponder


@implementer(IResponder)
@attr.s(hash=False)
class TLSALPN01Responder(object):
    """
    A ``tls-alpn-01`` challenge responder backed by a challenge registry.

    :type registry: `~txalpn.interfaces.IChallengeRegistry`
    :param registry: The registry consulted by a
        `~txalpn.server.TLSALPNServer`; usually ``server.registry``.
    """
    challenge_type = u'tls-alpn-01'

    registry = attr.ib()

    def start_responding(self, server_name, challenge, response):
        """
        Register the key authorization for the server name.
        """
        self.registry.add(server_name, response.key_authorization)

    def stop_responding(self, server_name, challenge, response):
        """
        Remove the registration for the server name.
        """
        self.registry.delete(server_name)


__all__ = ['TLSALPN01Responder']
