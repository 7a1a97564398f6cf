"""
``txalpn.interfaces.IChallengeRegistry`` implementation.
"""
from contextlib import contextmanager
from threading import Condition, Lock

import attr
from zope.interface import implementer

from txalpn.interfaces import IChallengeRegistry
from txalpn.logging import LOG_REGISTRY_ADD, LOG_REGISTRY_DELETE


class _ReadWriteLock(object):
    """
    A lock allowing any number of concurrent readers or a single writer.

    A waiting writer blocks new readers, so a steady stream of handshakes
    cannot starve registration changes.
    """
    def __init__(self):
        self._condition = Condition(Lock())
        self._readers = 0
        self._writing = False
        self._writers_waiting = 0

    @contextmanager
    def reading(self):
        with self._condition:
            while self._writing or self._writers_waiting:
                self._condition.wait()
            self._readers += 1
        try:
            yield
        finally:
            with self._condition:
                self._readers -= 1
                if not self._readers:
                    self._condition.notify_all()

    @contextmanager
    def writing(self):
        with self._condition:
            self._writers_waiting += 1
            try:
                while self._writing or self._readers:
                    self._condition.wait()
            finally:
                self._writers_waiting -= 1
            self._writing = True
        try:
            yield
        finally:
            with self._condition:
                self._writing = False
                self._condition.notify_all()


@implementer(IChallengeRegistry)
@attr.s(eq=False, hash=False)
class ChallengeRegistry(object):
    """
    A thread-safe in-memory store of TLS-ALPN-01 key authorizations.

    Lookups share a read lock and may run concurrently; registrations and
    deletions take the lock exclusively.
    """
    _challenges = attr.ib(default=attr.Factory(dict), converter=dict)
    _lock = attr.ib(default=attr.Factory(_ReadWriteLock), init=False)

    def add(self, server_name, key_authorization):
        with self._lock.writing():
            self._challenges[server_name] = key_authorization
        LOG_REGISTRY_ADD(server_name=server_name).write()

    def delete(self, server_name):
        with self._lock.writing():
            if server_name not in self._challenges:
                return
            del self._challenges[server_name]
        LOG_REGISTRY_DELETE(server_name=server_name).write()

    def get(self, server_name):
        with self._lock.reading():
            try:
                return self._challenges[server_name], True
            except KeyError:
                return u'', False

    def as_dict(self):
        with self._lock.reading():
            return dict(self._challenges)


__all__ = ['ChallengeRegistry']
