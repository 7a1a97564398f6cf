"""
Tests for `txalpn.server`.
"""
from OpenSSL import SSL
from testtools import ExpectedException
from testtools.matchers import Always, Contains, Equals, Is
from testtools.twistedsupport import (
    failed, has_no_result, succeeded)
from twisted.internet.address import IPv4Address
from twisted.internet.defer import fail, succeed
from twisted.internet.error import CannotListenError, ConnectionDone
from twisted.internet.interfaces import (
    IListeningPort, IOpenSSLServerConnectionCreator,
    IProtocolNegotiationFactory, IStreamServerEndpoint)
from twisted.internet.task import Clock
from twisted.internet.testing import StringTransport
from twisted.logger import Logger
from twisted.protocols.tls import TLSMemoryBIOFactory
from twisted.python.failure import Failure
from twisted.web.resource import Resource
from twisted.web.static import Data
from zope.interface import implementer

from txalpn import server as server_module
from txalpn.issuer import ACME_TLS_1_PROTOCOL
from txalpn.server import DEFAULT_TIMEOUT, TLSALPNServer, _DrainingTLSFactory
from txalpn.test.matchers import ProvesKeyAuthorization
from txalpn.testing import TXALPNTestCase, client_connection


ADDRESS = IPv4Address('TCP', '127.0.0.1', 5001)


@implementer(IListeningPort)
class DummyPort(object):
    """
    Port implementation that only records whether it is listening.
    """
    listening = True

    def startListening(self):  # noqa
        self.listening = True

    def stopListening(self):  # noqa
        self.listening = False

    def getHost(self):  # noqa
        return ADDRESS


@implementer(IStreamServerEndpoint)
class DummyEndpoint(object):
    """
    Endpoint implementation that records the factory it was given.
    """
    factory = None

    def __init__(self):
        self.port = DummyPort()

    def listen(self, factory):
        self.factory = factory
        return succeed(self.port)


@implementer(IStreamServerEndpoint)
class FailingEndpoint(object):
    """
    Endpoint implementation that can never listen.
    """
    def listen(self, factory):
        return fail(CannotListenError('127.0.0.1', 5001, 'in use'))


class TCPStringTransport(StringTransport):
    """
    A `StringTransport` that also accepts the TCP options the web server
    sets on new connections.
    """
    noDelay = False

    def setTcpNoDelay(self, enabled):  # noqa
        self.noDelay = enabled

    def getTcpNoDelay(self):  # noqa
        return self.noDelay


@implementer(IOpenSSLServerConnectionCreator)
class DummyConnectionCreator(object):
    """
    Connection creator that is never asked for a connection.
    """
    def serverConnectionForTLS(self, tlsProtocol):  # noqa
        raise NotImplementedError()


class FakeTLSProtocol(object):
    """
    Stands in for a connection registered with a `_DrainingTLSFactory`.
    """
    aborted = False

    def abortConnection(self):  # noqa
        self.aborted = True


def _pump(client, protocol, transport):
    """
    Move bytes between a client connection and a server protocol until
    neither has anything more to send.
    """
    while True:
        moved = False
        try:
            data = client.bio_read(65536)
        except SSL.WantReadError:
            pass
        else:
            protocol.dataReceived(data)
            moved = True
        data = transport.value()
        if data:
            transport.clear()
            client.bio_write(data)
            moved = True
        if not moved:
            return


def _client_handshake(client, protocol, transport):
    """
    Drive the client side of a handshake against a server protocol.

    :return: ``True`` if the client completed the handshake.
    """
    for _ in range(10):
        try:
            client.do_handshake()
        except SSL.WantReadError:
            _pump(client, protocol, transport)
        else:
            _pump(client, protocol, transport)
            return True
    return False


def _read_all(client):
    chunks = []
    while True:
        try:
            chunks.append(client.recv(65536))
        except (SSL.WantReadError, SSL.ZeroReturnError):
            return b''.join(chunks)


class TLSALPNServerTests(TXALPNTestCase):
    """
    `.TLSALPNServer` answers ``tls-alpn-01`` handshakes over TLS only.
    """
    def setUp(self):
        super(TLSALPNServerTests, self).setUp()
        self.clock = Clock()
        self.endpoint = DummyEndpoint()
        root = Resource()
        root.putChild(b'', Data(b'hello', 'text/plain'))
        self.server = TLSALPNServer(
            endpoint=self.endpoint,
            reactor=self.clock,
            resource=root)

    def connect(self):
        """
        Open a connection to the server's factory.
        """
        protocol = self.server.factory.buildProtocol(ADDRESS)
        transport = TCPStringTransport()
        protocol.makeConnection(transport)
        return protocol, transport

    def test_registration_api(self):
        """
        Challenges added to the server can be looked up and deleted.
        """
        self.server.add_challenge(u'example.test', u'token123.thumb')
        self.assertThat(
            self.server.get_challenge(u'example.test'),
            Equals((u'token123.thumb', True)))
        self.assertThat(
            self.server.registry.get(u'example.test'),
            Equals((u'token123.thumb', True)))
        self.server.delete_challenge(u'example.test')
        self.assertThat(
            self.server.get_challenge(u'example.test'),
            Equals((u'', False)))

    def test_distinct_keys(self):
        """
        The challenge signing key is not the fallback key.
        """
        issuer = self.server.issuer
        self.assertNotEqual(
            issuer.fallback.key.public_key().public_numbers(),
            issuer._key.public_key().public_numbers())

    def test_tls_only(self):
        """
        Connections are always wrapped in TLS, and the web site takes no part
        in ALPN.
        """
        factory = self.server.factory
        self.assertTrue(isinstance(factory, TLSMemoryBIOFactory))
        self.assertFalse(
            IProtocolNegotiationFactory.providedBy(factory.wrappedFactory))

    def test_timeout(self):
        """
        Connections use the configured idle timeout.
        """
        protocol, _ = self.connect()
        self.assertThat(
            protocol.wrappedProtocol.timeOut, Equals(DEFAULT_TIMEOUT))

    def test_challenge_handshake(self):
        """
        A client asking for ``acme-tls/1`` gets the challenge certificate for
        a registered name.
        """
        self.server.add_challenge(u'example.test', u'token123.thumb')
        protocol, transport = self.connect()
        client = client_connection(u'example.test')
        self.assertTrue(_client_handshake(client, protocol, transport))
        self.assertThat(
            client.get_alpn_proto_negotiated(), Equals(ACME_TLS_1_PROTOCOL))
        self.assertThat(
            client.get_peer_certificate().to_cryptography(),
            ProvesKeyAuthorization(u'token123.thumb'))

    def test_unknown_name_closes_connection(self):
        """
        A challenge handshake for an unregistered name fails, and the server
        closes only that connection.
        """
        protocol, transport = self.connect()
        client = client_connection(u'example.test')
        with ExpectedException(SSL.Error):
            _client_handshake(client, protocol, transport)
        self.assertThat(transport.disconnecting, Is(True))

        self.server.add_challenge(u'example.test', u'token123.thumb')
        protocol, transport = self.connect()
        client = client_connection(u'example.test')
        self.assertTrue(_client_handshake(client, protocol, transport))
        self.assertThat(transport.disconnecting, Is(False))

    def test_unknown_name_rejected_cleanly(self):
        """
        The server side of a rejected challenge handshake handles the
        rejection itself: nothing escapes the TLS protocol, a TLS alert is
        sent, and the connection is closed.
        """
        protocol, transport = self.connect()
        client = client_connection(u'unregistered.test')
        with ExpectedException(SSL.WantReadError):
            client.do_handshake()
        protocol.dataReceived(client.bio_read(65536))
        self.assertThat(transport.disconnecting, Is(True))
        alert = transport.value()
        self.assertTrue(alert)
        client.bio_write(alert)
        with ExpectedException(SSL.Error):
            client.do_handshake()

    def test_no_keep_alive(self):
        """
        The web site closes the connection after each response, even when
        the client asks for a persistent HTTP/1.1 connection.
        """
        protocol, transport = self.connect()
        client = client_connection(u'example.test', None)
        self.assertTrue(_client_handshake(client, protocol, transport))
        self.assertThat(
            client.get_peer_certificate().to_cryptography(),
            Equals(self.server.issuer.fallback.certificate))
        client.send(
            b'GET / HTTP/1.1\r\n'
            b'Host: example.test\r\n'
            b'Connection: keep-alive\r\n'
            b'\r\n')
        _pump(client, protocol, transport)
        # Small TLS writes are coalesced on the clock.
        self.clock.advance(0)
        _pump(client, protocol, transport)
        response = _read_all(client)
        headers, body = response.split(b'\r\n\r\n', 1)
        self.assertTrue(headers.startswith(b'HTTP/1.1 200 '))
        self.assertThat(body, Equals(b'hello'))
        self.assertThat(headers.lower(), Contains(b'connection: close'))
        self.assertThat(protocol.disconnecting, Is(True))

    def test_start_stop(self):
        """
        Starting the service listens on the endpoint; stopping it stops
        listening and fires once there are no connections.
        """
        self.server.startService()
        self.assertThat(self.endpoint.factory, Is(self.server.factory))
        self.assertThat(self.server.running, Equals(True))
        self.assertThat(
            self.server.stopService(), succeeded(Always()))
        self.assertThat(self.endpoint.port.listening, Is(False))
        self.assertThat(self.server.running, Equals(False))

    def test_stop_not_started(self):
        """
        Stopping a service that never started does nothing.
        """
        self.assertThat(self.server.stopService(), succeeded(Is(None)))

    def test_listen_failure(self):
        """
        If the endpoint cannot listen, the failure is logged and the service
        is not left running.
        """
        events = []
        self.patch(server_module, 'log', Logger(observer=events.append))
        server = TLSALPNServer(endpoint=FailingEndpoint(), reactor=self.clock)
        server.startService()
        self.assertThat(server.running, Equals(False))
        [event] = events
        self.assertTrue(event['log_failure'].check(CannotListenError))
        self.assertThat(server.stopService(), succeeded(Is(None)))

    def test_listen_failure_raise_synchronously(self):
        """
        With ``raise_synchronously``, ``startService`` raises if the endpoint
        cannot listen.
        """
        server = TLSALPNServer(
            endpoint=FailingEndpoint(),
            reactor=self.clock,
            raise_synchronously=True)
        with ExpectedException(CannotListenError):
            server.startService()
        self.assertThat(server.running, Equals(False))
        self.assertThat(server.stopService(), succeeded(Is(None)))

    def test_stop_waits_for_connections(self):
        """
        Stopping the service waits for open connections to close.
        """
        self.server.startService()
        protocol, transport = self.connect()
        d = self.server.stopService()
        self.assertThat(self.endpoint.port.listening, Is(False))
        self.assertThat(d, has_no_result())
        protocol.connectionLost(Failure(ConnectionDone()))
        self.assertThat(d, succeeded(Is(None)))


class DrainingTLSFactoryTests(TXALPNTestCase):
    """
    `._DrainingTLSFactory` tracks its connections so shutdown can wait for,
    or abort, them.
    """
    def setUp(self):
        super(DrainingTLSFactoryTests, self).setUp()
        self.factory = _DrainingTLSFactory(
            DummyConnectionCreator(), None, clock=Clock())

    def test_no_connections(self):
        """
        With no connections, ``when_drained`` fires immediately.
        """
        self.assertThat(self.factory.when_drained(), succeeded(Is(None)))

    def test_drained(self):
        """
        ``when_drained`` fires once every connection is unregistered.
        """
        first, second = FakeTLSProtocol(), FakeTLSProtocol()
        self.factory.registerProtocol(first)
        self.factory.registerProtocol(second)
        d = self.factory.when_drained()
        self.factory.unregisterProtocol(first)
        self.assertThat(d, has_no_result())
        self.factory.unregisterProtocol(second)
        self.assertThat(d, succeeded(Is(None)))

    def test_cancel_aborts(self):
        """
        Cancelling ``when_drained`` aborts the open connections.
        """
        protocol = FakeTLSProtocol()
        self.factory.registerProtocol(protocol)
        d = self.factory.when_drained()
        d.cancel()
        self.assertThat(d, failed(Always()))
        self.assertThat(protocol.aborted, Is(True))
        # Later disconnection does not fire the cancelled Deferred again.
        self.factory.unregisterProtocol(protocol)
