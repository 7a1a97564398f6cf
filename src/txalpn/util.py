"""
Key and certificate helpers.
"""
from datetime import datetime, timedelta, timezone

from cryptography import x509
from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.asymmetric import ec, rsa
from cryptography.x509.oid import ExtendedKeyUsageOID, NameOID


#: Common name of the certificate served to ordinary TLS clients.
FALLBACK_COMMON_NAME = u'challenge test server'

#: How far the fallback certificate validity is backdated, to absorb clock
#: skew between client and server.
FALLBACK_BACKDATE = timedelta(hours=1)

#: How long the fallback certificate is valid for.
FALLBACK_LIFETIME = timedelta(days=365)


def generate_private_key(key_type):
    """
    Generate a random private key using sensible parameters.

    :param str key_type: The type of key to generate. One of: ``ecdsa``
        (P-256), ``rsa``.
    """
    if key_type == u'ecdsa':
        return ec.generate_private_key(ec.SECP256R1())
    if key_type == u'rsa':
        return rsa.generate_private_key(public_exponent=65537, key_size=2048)
    raise ValueError(key_type)


def clock_now(clock):
    """
    Get a datetime representing the current time.

    :param clock: An ``IReactorTime`` provider.

    :rtype: `~datetime.datetime`
    :return: A timezone-aware UTC datetime representing the current time.
    """
    return datetime.fromtimestamp(clock.seconds(), tz=timezone.utc)


def generate_fallback_certificate(key, clock):
    """
    Generate the self-signed certificate served to clients that do not ask
    for a TLS-ALPN-01 challenge certificate.

    :param key: A Cryptography private key object; usually from
        ``generate_private_key(u'ecdsa')``.
    :param clock: An ``IReactorTime`` provider.

    :rtype: `cryptography.x509.Certificate`
    """
    now = clock_now(clock)
    name = x509.Name([
        x509.NameAttribute(NameOID.COMMON_NAME, FALLBACK_COMMON_NAME)])
    return (
        x509.CertificateBuilder()
        .subject_name(name)
        .issuer_name(name)
        .public_key(key.public_key())
        .serial_number(x509.random_serial_number())
        .not_valid_before(now - FALLBACK_BACKDATE)
        .not_valid_after(now + FALLBACK_LIFETIME)
        .add_extension(
            x509.KeyUsage(
                digital_signature=True,
                content_commitment=False,
                key_encipherment=False,
                data_encipherment=False,
                key_agreement=False,
                key_cert_sign=True,
                crl_sign=False,
                encipher_only=False,
                decipher_only=False),
            critical=True)
        .add_extension(
            x509.ExtendedKeyUsage([
                ExtendedKeyUsageOID.SERVER_AUTH,
                ExtendedKeyUsageOID.CLIENT_AUTH]),
            critical=False)
        .add_extension(
            x509.BasicConstraints(ca=True, path_length=None),
            critical=True)
        .sign(key, hashes.SHA256()))


__all__ = [
    'generate_private_key', 'clock_now', 'generate_fallback_certificate']
