# -*- coding: utf-8 -*-
"""
Interface definitions for txalpn.
"""
from zope.interface import Attribute, Interface


class IResponder(Interface):
    """
    Configuration for a ACME challenge responder.

    The actual responder may exist somewhere else, this interface is merely for
    an object that knows how to configure it.
    """
    challenge_type = Attribute(
        """
        The type of challenge this responder is able to respond for.

        Must correspond to one of the types from `acme.challenges`; for
        example, ``u'tls-alpn-01'``.
        """)

    def start_responding(server_name, challenge, response):
        """
        Start responding for a particular challenge.

        :param str server_name: The server name being validated.
        :param challenge: The `acme.challenges` challenge object.
        :param response: The `acme.challenges` response object; the exact type
            of this object depends on the challenge type.
        """

    def stop_responding(server_name, challenge, response):
        """
        Stop responding for a particular challenge.

        May be a noop if a particular responder does not need or implement
        explicit cleanup; implementations should not rely on this method always
        being called.

        :param str server_name: The server name being validated.
        :param challenge: The `acme.challenges` challenge object.
        :param response: The `acme.challenges` response object; the exact type
            of this object depends on the challenge type.
        """


class IChallengeRegistry(Interface):
    """
    A store of TLS-ALPN-01 key authorizations, keyed by server name.
    """
    def add(server_name, key_authorization):
        """
        Register a key authorization for a server name, replacing any previous
        registration for the same name.

        :param str server_name: The server name.
        :param str key_authorization: The key authorization to prove.
        """

    def delete(server_name):
        """
        Remove the registration for a server name.

        Deleting a server name that is not registered does nothing.

        :param str server_name: The server name.
        """

    def get(server_name):
        """
        Look up the key authorization for a server name.

        :param str server_name: The server name.

        :rtype: ``Tuple[str, bool]``
        :return: The key authorization and ``True``, or ``u''`` and ``False``
            if there is no registration for the name.
        """

    def as_dict():
        """
        Get all current registrations.

        :rtype: ``Dict[str, str]``
        :return: A snapshot mapping server names to key authorizations.
        """


__all__ = ['IResponder', 'IChallengeRegistry']
