"""
Per-handshake certificate selection for ``tls-alpn-01``.
"""
import hashlib
from datetime import timedelta

import attr
from cryptography import x509
from cryptography.hazmat.primitives import hashes
from OpenSSL.crypto import PKey, X509
from OpenSSL.SSL import Connection, NO_OVERLAPPING_PROTOCOLS
from pyasn1.codec.der import encoder as der_encoder
from pyasn1.error import PyAsn1Error
from pyasn1.type import univ
from twisted.internet.interfaces import IOpenSSLServerConnectionCreator
from twisted.internet.ssl import CertificateOptions, TLSVersion
from zope.interface import implementer

from txalpn.errors import ChallengeCertificateError, UnknownServerName
from txalpn.logging import LOG_TLSALPN_SELECT_CERTIFICATE
from txalpn.util import FALLBACK_BACKDATE, clock_now


#: The ALPN protocol identifier of the ``tls-alpn-01`` challenge (RFC 8737).
ACME_TLS_1_PROTOCOL = b'acme-tls/1'

#: id-pe-acmeIdentifier (RFC 8737).
ID_PE_ACME_IDENTIFIER = x509.ObjectIdentifier(u'1.3.6.1.5.5.7.1.31')

CHALLENGE_SERIAL_NUMBER = 1729

CHALLENGE_LIFETIME = timedelta(days=1)


def encode_key_authorization_digest(key_authorization):
    """
    Encode the acmeIdentifier extension value for a key authorization.

    :param str key_authorization: The key authorization.

    :rtype: bytes
    :return: The DER encoding of an OCTET STRING holding the SHA-256 digest
        of the UTF-8 encoded key authorization.
    """
    digest = hashlib.sha256(key_authorization.encode('utf-8')).digest()
    return der_encoder.encode(univ.OctetString(digest))


@attr.s(frozen=True)
class CertificateKeyPair(object):
    """
    A certificate and the private key it was issued for.
    """
    certificate = attr.ib()
    key = attr.ib()


@attr.s(eq=False, hash=False)
class ChallengeCertificateIssuer(object):
    """
    Chooses the certificate to present in a TLS handshake, minting
    ``tls-alpn-01`` challenge certificates on demand.

    :type registry: `~txalpn.interfaces.IChallengeRegistry`
    :param registry: Where key authorizations are looked up.  Only read.
    :param CertificateKeyPair fallback: The certificate presented to clients
        that do not ask for a challenge certificate.
    :param key: A Cryptography private key object which challenge
        certificates are issued for and signed with; must not be the fallback
        key.
    :param clock: ``IReactorTime`` provider; usually the reactor, when not
        testing.
    """
    registry = attr.ib()
    fallback = attr.ib()
    _key = attr.ib(repr=False)
    _clock = attr.ib()

    def select_certificate(self, protocols, server_name):
        """
        Select the certificate for a handshake.

        :param ``List[bytes]`` protocols: The ALPN protocols offered by the
            client.
        :param server_name: The server name requested by the client, or
            ``None`` if it did not send one.
        :type server_name: ``Optional[str]``

        :raises UnknownServerName: if a challenge certificate was requested
            for a server name without a registered key authorization.
        :raises ChallengeCertificateError: if the challenge certificate could
            not be built.

        :rtype: `CertificateKeyPair`
        """
        with LOG_TLSALPN_SELECT_CERTIFICATE(
                server_name=server_name, protocols=protocols) as action:
            if list(protocols) != [ACME_TLS_1_PROTOCOL]:
                action.add_success_fields(certificate=u'fallback')
                return self.fallback
            key_authorization, found = self.registry.get(server_name)
            if not found:
                raise UnknownServerName(server_name)
            certificate = self._issue(server_name, key_authorization)
            action.add_success_fields(certificate=u'challenge')
            return CertificateKeyPair(certificate=certificate, key=self._key)

    def _issue(self, server_name, key_authorization):
        """
        Mint and self-sign a challenge certificate.
        """
        try:
            extension_value = encode_key_authorization_digest(
                key_authorization)
        except (PyAsn1Error, UnicodeError) as e:
            raise ChallengeCertificateError(server_name, e)
        now = clock_now(self._clock)
        try:
            return (
                x509.CertificateBuilder()
                .subject_name(x509.Name([]))
                .issuer_name(x509.Name([]))
                .public_key(self._key.public_key())
                .serial_number(CHALLENGE_SERIAL_NUMBER)
                .not_valid_before(now - FALLBACK_BACKDATE)
                .not_valid_after(now + CHALLENGE_LIFETIME)
                # Critical, since the subject is empty.
                .add_extension(
                    x509.SubjectAlternativeName([x509.DNSName(server_name)]),
                    critical=True)
                .add_extension(
                    x509.UnrecognizedExtension(
                        ID_PE_ACME_IDENTIFIER, extension_value),
                    critical=True)
                .sign(self._key, hashes.SHA256()))
        except (ValueError, TypeError) as e:
            raise ChallengeCertificateError(server_name, e)

    def alpn_select(self, connection, protocols):
        """
        ALPN selection callback for ``OpenSSL.SSL.Context``.

        Installs the selected certificate on ``connection``; OpenSSL picks
        the server certificate only after ALPN has been negotiated.
        """
        server_name = connection.get_servername()
        if server_name is not None:
            server_name = server_name.decode('ascii', 'replace')
        pair = self.select_certificate(protocols, server_name)
        if pair is not self.fallback:
            connection.use_certificate(X509.from_cryptography(pair.certificate))
            connection.use_privatekey(PKey.from_cryptography_key(pair.key))
        if ACME_TLS_1_PROTOCOL in protocols:
            return ACME_TLS_1_PROTOCOL
        return NO_OVERLAPPING_PROTOCOLS


@implementer(IOpenSSLServerConnectionCreator)
@attr.s(eq=False, hash=False)
class ChallengeContextFactory(object):
    """
    Creates server-side TLS connections whose certificate is chosen by a
    `ChallengeCertificateIssuer`.

    The fallback certificate is configured on the shared context, so clients
    that send no ALPN extension at all get it without consulting the issuer.
    """
    issuer = attr.ib()
    _context = attr.ib(default=None, init=False, repr=False)

    def getContext(self):  # noqa
        if self._context is None:
            fallback = self.issuer.fallback
            options = CertificateOptions(
                privateKey=PKey.from_cryptography_key(fallback.key),
                certificate=X509.from_cryptography(fallback.certificate),
                raiseMinimumTo=TLSVersion.TLSv1_2)
            context = options.getContext()
            context.set_alpn_select_callback(self.issuer.alpn_select)
            self._context = context
        return self._context

    def serverConnectionForTLS(self, tlsProtocol):  # noqa
        return Connection(self.getContext(), None)


__all__ = [
    'ACME_TLS_1_PROTOCOL', 'ID_PE_ACME_IDENTIFIER', 'CertificateKeyPair',
    'ChallengeCertificateIssuer', 'ChallengeContextFactory',
    'encode_key_authorization_digest']
