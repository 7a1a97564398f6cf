"""
A TLS-only web server answering ``tls-alpn-01`` validation handshakes.
"""
from functools import partial

import attr
from twisted.application.service import Service
from twisted.internet.defer import Deferred, maybeDeferred, succeed
from twisted.internet.interfaces import ILoggingContext, IProtocolFactory
from twisted.logger import Logger
from twisted.protocols.tls import TLSMemoryBIOFactory
from twisted.web import pages
from twisted.web.http import HTTPChannel
from twisted.web.server import Site
from zope.interface import implementer_only

from txalpn.issuer import (
    CertificateKeyPair, ChallengeCertificateIssuer, ChallengeContextFactory)
from txalpn.registry import ChallengeRegistry
from txalpn.util import generate_fallback_certificate, generate_private_key


log = Logger()

#: Seconds a connection may stay idle, including during the handshake.
DEFAULT_TIMEOUT = 5


class _NonPersistentHTTPChannel(HTTPChannel):
    """
    An HTTP channel that closes the connection after every response, so each
    validation attempt starts with a fresh handshake.
    """
    def checkPersistence(self, request, version):  # noqa
        request.responseHeaders.setRawHeaders(b'connection', [b'close'])
        return False


@implementer_only(IProtocolFactory, ILoggingContext)
class _ChallengeSite(Site):
    """
    A `Site` that does not take part in ALPN negotiation.

    A wrapped factory offering protocols would replace the challenge ALPN
    callback on the shared TLS context.
    """
    protocol = _NonPersistentHTTPChannel


class _DrainingTLSFactory(TLSMemoryBIOFactory):
    """
    A server-side TLS factory that can report when all of its connections
    have closed.
    """
    def __init__(self, contextFactory, wrappedFactory, clock=None):
        TLSMemoryBIOFactory.__init__(
            self, contextFactory, False, wrappedFactory, clock=clock)
        self._waiting = []

    def unregisterProtocol(self, p):  # noqa
        TLSMemoryBIOFactory.unregisterProtocol(self, p)
        if not self.protocols:
            waiting, self._waiting = self._waiting, []
            for d in waiting:
                d.callback(None)

    def when_drained(self):
        """
        Wait for every open connection to close.

        Cancelling the returned Deferred aborts the remaining connections.

        :rtype: ``Deferred[None]``
        """
        if not self.protocols:
            return succeed(None)

        def _cancel(d):
            self._waiting.remove(d)
            self.abort_connections()
        d = Deferred(_cancel)
        self._waiting.append(d)
        return d

    def abort_connections(self):
        """
        Abort every open connection immediately.
        """
        for p in list(self.protocols):
            p.abortConnection()


@attr.s(eq=False, hash=False)
class TLSALPNServer(Service):
    """
    A service answering ``tls-alpn-01`` validation handshakes.

    Every connection is TLS; there is no way to configure certificate files,
    as certificates are chosen during each handshake.  Clients asking for
    ``acme-tls/1`` get a challenge certificate for a registered server name
    (or a failed handshake), everyone else gets a self-signed fallback
    certificate.

    :type endpoint: ``twisted.internet.interfaces.IStreamServerEndpoint``
    :param endpoint: Where to listen, for example
        ``serverFromString(reactor, 'tcp:5001')``.
    :param reactor: The Twisted reactor.
    :param resource: The ``twisted.web`` resource served once a handshake
        completes.  Defaults to a 404 page.
    :param float timeout: How long a connection may stay idle, in seconds.
    :type registry: `~txalpn.interfaces.IChallengeRegistry`
    :param registry: Where key authorizations are registered.
    :param bool raise_synchronously: If ``True``, ``startService`` raises
        when the endpoint fails to listen immediately; otherwise the failure
        is logged.  Either way the service is no longer running.
    :param generate_key: A 0-arg callable used to generate the fallback and
        challenge signing keys.  Normally you would not pass this.
    """
    endpoint = attr.ib()
    reactor = attr.ib()
    resource = attr.ib(default=attr.Factory(pages.notFound))
    timeout = attr.ib(default=DEFAULT_TIMEOUT)
    registry = attr.ib(default=attr.Factory(ChallengeRegistry))
    raise_synchronously = attr.ib(default=False)
    _generate_key = attr.ib(default=partial(generate_private_key, u'ecdsa'))

    _waiting_for_port = None

    def __attrs_post_init__(self):
        fallback_key = self._generate_key()
        fallback = CertificateKeyPair(
            certificate=generate_fallback_certificate(
                fallback_key, self.reactor),
            key=fallback_key)
        self.issuer = ChallengeCertificateIssuer(
            registry=self.registry,
            fallback=fallback,
            key=self._generate_key(),
            clock=self.reactor)
        site = _ChallengeSite(
            self.resource, timeout=self.timeout, reactor=self.reactor)
        self.context_factory = ChallengeContextFactory(self.issuer)
        self.factory = _DrainingTLSFactory(
            self.context_factory, site, clock=self.reactor)

    def add_challenge(self, server_name, key_authorization):
        """
        Answer challenge handshakes for ``server_name`` with proof of
        ``key_authorization``.
        """
        self.registry.add(server_name, key_authorization)

    def delete_challenge(self, server_name):
        """
        Stop answering challenge handshakes for ``server_name``.
        """
        self.registry.delete(server_name)

    def get_challenge(self, server_name):
        """
        Get the key authorization registered for ``server_name``.

        :rtype: ``Tuple[str, bool]``
        """
        return self.registry.get(server_name)

    def startService(self):  # noqa
        Service.startService(self)

        def _listening(port):
            log.info(
                u'Answering tls-alpn-01 handshakes on {address}',
                address=port.getHost())
            return port

        raised_now = []

        def _failed(failure):
            self.running = False
            if self.raise_synchronously:
                raised_now.append(failure)
            else:
                log.failure(u'Unable to listen for tls-alpn-01 handshakes',
                            failure)

        self._waiting_for_port = (
            maybeDeferred(self.endpoint.listen, self.factory)
            .addCallbacks(_listening, _failed))
        if raised_now:
            self._waiting_for_port = None
            raised_now[0].raiseException()

    def stopService(self):  # noqa
        """
        Stop accepting connections, and wait for open ones to close.

        :rtype: ``Deferred[None]``
        :return: A Deferred firing once every connection has closed;
            cancelling it aborts the connections still open.
        """
        Service.stopService(self)
        d, self._waiting_for_port = self._waiting_for_port, None
        if d is None:
            return succeed(None)

        def _stop_listening(port):
            if port is not None:
                return port.stopListening()

        def _stopped(_):
            log.info(u'Stopped listening for tls-alpn-01 handshakes')
            return self.factory.when_drained()

        return d.addCallback(_stop_listening).addCallback(_stopped)


__all__ = ['TLSALPNServer', 'DEFAULT_TIMEOUT']
