"""
A JSON-over-HTTP API for registering ``tls-alpn-01`` key authorizations from
outside the process.

``POST /add-tlsalpn01`` with ``{"host": ..., "content": ...}`` registers a
key authorization, ``POST /del-tlsalpn01`` with ``{"host": ...}`` removes it
and ``GET /tlsalpn01`` lists the current registrations.
"""
import json

from twisted.web import http
from twisted.web.resource import Resource


def _read_json(request, *names):
    """
    Read the named string members of a JSON object request body.

    :raises ValueError: if the body is not a JSON object with string values
        for all of ``names``.
    """
    body = json.loads(request.content.read().decode('utf-8'))
    if not isinstance(body, dict):
        raise ValueError('request body must be a JSON object')
    values = []
    for name in names:
        value = body.get(name)
        if not isinstance(value, str) or not value:
            raise ValueError('{!r} must be a non-empty string'.format(name))
        values.append(value)
    return values


def _bad_request(request, error):
    request.setResponseCode(http.BAD_REQUEST)
    request.setHeader(b'content-type', b'text/plain; charset=utf-8')
    return u'{}\n'.format(error).encode('utf-8')


class _AddChallenge(Resource):
    isLeaf = True

    def __init__(self, registry):
        Resource.__init__(self)
        self._registry = registry

    def render_POST(self, request):  # noqa
        try:
            host, content = _read_json(request, u'host', u'content')
        except ValueError as e:
            return _bad_request(request, e)
        self._registry.add(host, content)
        return b''


class _DeleteChallenge(Resource):
    isLeaf = True

    def __init__(self, registry):
        Resource.__init__(self)
        self._registry = registry

    def render_POST(self, request):  # noqa
        try:
            [host] = _read_json(request, u'host')
        except ValueError as e:
            return _bad_request(request, e)
        self._registry.delete(host)
        return b''


class _ListChallenges(Resource):
    isLeaf = True

    def __init__(self, registry):
        Resource.__init__(self)
        self._registry = registry

    def render_GET(self, request):  # noqa
        request.setHeader(b'content-type', b'application/json')
        return json.dumps(
            self._registry.as_dict(), sort_keys=True).encode('utf-8')


class ManagementResource(Resource):
    """
    The root of the management API.

    :type registry: `~txalpn.interfaces.IChallengeRegistry`
    :param registry: The registry to manage.
    """
    def __init__(self, registry):
        Resource.__init__(self)
        self.putChild(b'add-tlsalpn01', _AddChallenge(registry))
        self.putChild(b'del-tlsalpn01', _DeleteChallenge(registry))
        self.putChild(b'tlsalpn01', _ListChallenges(registry))


__all__ = ['ManagementResource']
