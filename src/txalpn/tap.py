"""
``twist txalpn``: run a standalone ``tls-alpn-01`` challenge test server.
"""
from eliot import to_file
from twisted.application.internet import StreamServerEndpointService
from twisted.application.service import MultiService
from twisted.internet.endpoints import serverFromString
from twisted.python import usage
from twisted.web.server import Site

from txalpn.management import ManagementResource
from txalpn.server import DEFAULT_TIMEOUT, TLSALPNServer


class Options(usage.Options):
    """
    Command-line options for ``twist txalpn``.
    """
    synopsis = '[options]'

    optParameters = [
        ['listen', None, 'tcp:5001',
         'Endpoint description to answer tls-alpn-01 handshakes on.'],
        ['management', None, 'tcp:8055:interface=127.0.0.1',
         'Endpoint description for the management API.'],
        ['timeout', None, float(DEFAULT_TIMEOUT),
         'Seconds a TLS connection may stay idle.', float],
        ['eliot-log', None, None,
         'Append eliot log messages to this file.'],
    ]

    def postOptions(self):  # noqa
        if self['timeout'] <= 0:
            raise usage.UsageError('--timeout must be positive')


def makeService(options, reactor=None):  # noqa
    """
    Build the challenge test server and its management API.
    """
    if reactor is None:
        from twisted.internet import reactor
    if options['eliot-log'] is not None:
        to_file(open(options['eliot-log'], 'ab'))

    service = MultiService()
    server = TLSALPNServer(
        endpoint=serverFromString(reactor, options['listen']),
        reactor=reactor,
        timeout=options['timeout'],
        raise_synchronously=True)
    server.setName('tls-alpn-01')
    server.setServiceParent(service)
    management = StreamServerEndpointService(
        serverFromString(reactor, options['management']),
        Site(ManagementResource(server.registry), reactor=reactor))
    management.setName('management')
    management.setServiceParent(service)
    return service


__all__ = ['Options', 'makeService']
