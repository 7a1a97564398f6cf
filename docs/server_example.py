"""
Run a tls-alpn-01 challenge test server for a single server name.

Example usage:

$ python docs/server_example.py example.test token.thumbprint

It answers on port 5001; ``openssl s_client -connect 127.0.0.1:5001
-servername example.test -alpn acme-tls/1`` shows the challenge certificate.
"""
import sys

from eliot import to_file
from twisted.internet import task
from twisted.internet.defer import Deferred
from twisted.internet.endpoints import serverFromString

from txalpn.server import TLSALPNServer


def main(reactor, server_name, key_authorization):
    to_file(sys.stdout)
    server = TLSALPNServer(
        endpoint=serverFromString(reactor, 'tcp:5001'), reactor=reactor)
    server.add_challenge(server_name, key_authorization)
    server.startService()
    reactor.addSystemEventTrigger('before', 'shutdown', server.stopService)
    return Deferred()


if __name__ == '__main__':
    task.react(main, sys.argv[1:])
