"""
Eliot message and action definitions.
"""
from eliot import ActionType, Field, MessageType, fields


SERVER_NAME = Field.for_types(
    u'server_name',
    [str, None],
    u'The server name requested by the client (SNI)')

PROTOCOLS = Field(
    u'protocols',
    lambda protocols: [
        protocol.decode('ascii', 'replace') for protocol in protocols],
    u'The ALPN protocols offered by the client')

LOG_TLSALPN_SELECT_CERTIFICATE = ActionType(
    u'txalpn:tls-alpn:select-certificate',
    fields(SERVER_NAME, PROTOCOLS),
    fields(certificate=str),
    u'Selecting the certificate for a TLS handshake')

LOG_REGISTRY_ADD = MessageType(
    u'txalpn:registry:add',
    fields(server_name=str),
    u'A key authorization was registered for a server name')

LOG_REGISTRY_DELETE = MessageType(
    u'txalpn:registry:delete',
    fields(server_name=str),
    u'The key authorization for a server name was removed')
