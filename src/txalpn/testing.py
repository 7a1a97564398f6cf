"""
Utilities for testing with txalpn.
"""
import attr
from OpenSSL import SSL
from testtools import TestCase
from twisted.internet import reactor

from txalpn.issuer import ACME_TLS_1_PROTOCOL


class TXALPNTestCase(TestCase):
    """
    Common code for all tests for the txalpn project.
    """

    def tearDown(self):
        super(TXALPNTestCase, self).tearDown()

        # Make sure the main reactor is clean after each test.
        junk = []
        for delayed_call in reactor.getDelayedCalls():
            junk.append(delayed_call.func)
            delayed_call.cancel()
        if junk:
            raise AssertionError(
                'Reactor is not clean. DelayedCalls: %s' % (junk,))


@attr.s(frozen=True)
class HandshakeResult(object):
    """
    What a client saw at the end of a successful TLS handshake.

    :ivar certificate: The server certificate, as a
        `cryptography.x509.Certificate`.
    :ivar bytes protocol: The negotiated ALPN protocol; empty if none was
        negotiated.
    """
    certificate = attr.ib()
    protocol = attr.ib()


def client_connection(server_name=None, protocols=(ACME_TLS_1_PROTOCOL,)):
    """
    Create the client side of an in-memory TLS connection.

    The client does not verify the server certificate.
    """
    context = SSL.Context(SSL.TLS_METHOD)
    if protocols is not None:
        context.set_alpn_protos(list(protocols))
    connection = SSL.Connection(context, None)
    if server_name is not None:
        connection.set_tlsext_host_name(server_name.encode('idna'))
    connection.set_connect_state()
    return connection


def _handshake_step(connection):
    try:
        connection.do_handshake()
    except SSL.WantReadError:
        return False
    return True


def _shuttle(source, destination):
    try:
        data = source.bio_read(65536)
    except SSL.WantReadError:
        return False
    destination.bio_write(data)
    return True


def handshake(connection_creator, server_name=None,
              protocols=(ACME_TLS_1_PROTOCOL,)):
    """
    Perform a TLS handshake in memory, without any network or reactor
    involvement.

    :type connection_creator:
        ``twisted.internet.interfaces.IOpenSSLServerConnectionCreator``
    :param connection_creator: Creates the server side of the connection; for
        example `txalpn.issuer.ChallengeContextFactory`.
    :param str server_name: The server name to send (SNI), if any.
    :param protocols: The ALPN protocols to offer, or ``None`` to not send
        the ALPN extension at all.

    :raises OpenSSL.SSL.Error: if either side fails the handshake; errors
        raised by the server's certificate selection propagate unchanged.

    :rtype: `HandshakeResult`
    """
    client = client_connection(server_name, protocols)
    server = connection_creator.serverConnectionForTLS(None)
    server.set_accept_state()
    client_done = server_done = False
    while True:
        client_done = client_done or _handshake_step(client)
        server_done = server_done or _handshake_step(server)
        moved = _shuttle(client, server)
        moved = _shuttle(server, client) or moved
        if not moved:
            if client_done and server_done:
                break
            raise RuntimeError('TLS handshake stalled')
    return HandshakeResult(
        certificate=client.get_peer_certificate().to_cryptography(),
        protocol=client.get_alpn_proto_negotiated())


__all__ = [
    'TXALPNTestCase', 'HandshakeResult', 'client_connection', 'handshake']
