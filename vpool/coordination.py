"""
Access to the coordination service (ZooKeeper) for the other vpool components.

The ``ICoordinationClient`` interface is the only way the rest of the package
talks to the service; ``KazooCoordinationClient`` implements it on top of the
kazoo client library. Kazoo does its own I/O in a separate thread, blocking
calls are thus run in the reactor thread pool and every watch notification is
delivered back on the reactor thread.
"""



from zope.interface import Interface, implementer

from twisted.internet import threads

from kazoo.client import KazooClient, KazooState
from kazoo import exceptions as kze
from kazoo.handlers.threading import KazooTimeoutError

from vpool import error, logging



# Watch event types
CREATED = 'CREATED'
DELETED = 'DELETED'
CHANGED = 'CHANGED'
CHILD = 'CHILD'
SESSION = 'SESSION'

# Session states
CONNECTED = 'CONNECTED'
SUSPENDED = 'SUSPENDED'
LOST = 'LOST'



class WatchEvent(object):
    """
    A notification delivered to a watch callback.

    ``type`` is one of the event type constants of this module, ``state`` the
    session state at the moment of the event and ``path`` the watched path.

    Events of type ``SESSION`` are delivered to all pending watches when the
    session is lost; no further notification will follow for these watches.
    """

    def __init__(self, e_type, e_state, e_path):
        self.type = e_type
        self.state = e_state
        self.path = e_path


    def __repr__(self):
        return '<WatchEvent {0} {1} {2}>'.format(self.type, self.state,
                self.path)



class ICoordinationClient(Interface):
    """
    A connected handle to a hierarchical coordination service.

    All methods return deferreds. Failures are reported with the exceptions
    defined in ``vpool.error``: ``NoNodeError``, ``NodeExistsError`` and
    ``CoordinationDisconnected``.

    Watches are one-shot callables taking a single ``WatchEvent`` argument.
    They are always invoked in the reactor thread.
    """

    def create(path, value=b'', ephemeral=False, sequence=False,
            makepath=False):
        """
        Creates a node at ``path`` with the given content. If ``sequence`` is
        true, a 10 digit zero padded sequence number is appended to the path.

        Fires with the path of the created node.
        """


    def ensurePath(path):
        """
        Creates ``path`` and all of its missing parents. Fires with ``None``.
        """


    def delete(path):
        """
        Deletes the node at ``path``.
        """


    def get(path, watch=None):
        """
        Fires with the content (bytes) of the node at ``path``. The optional
        watch is triggered when the node content changes or the node is
        deleted.
        """


    def set(path, value):
        """
        Replaces the content of the node at ``path``.
        """


    def getChildren(path):
        """
        Fires with the list of child names of the node at ``path``.
        """


    def exists(path, watch=None):
        """
        Fires with ``True`` if a node exists at ``path``. The optional watch is
        triggered when the node is created, deleted or its content changes.
        A watch set on a missing node gets no ``SESSION`` event on session
        loss.
        """



def translateError(failure):
    """
    Errback translating kazoo exceptions to ``vpool.error`` ones.
    """

    if failure.check(kze.NoNodeError):
        raise error.NoNodeError(str(failure.value) or 'No such node')
    elif failure.check(kze.NodeExistsError):
        raise error.NodeExistsError(str(failure.value) or 'Node exists')
    elif failure.check(kze.ConnectionLoss, kze.SessionExpiredError,
            kze.ConnectionClosedError, kze.OperationTimeoutError,
            KazooTimeoutError):
        raise error.CoordinationDisconnected('{0}: {1}'.format(
                failure.type.__name__, failure.value))
    elif failure.check(kze.KazooException):
        raise error.CoordinationError('{0}: {1}'.format(
                failure.type.__name__, failure.value))

    return failure



@implementer(ICoordinationClient)
class KazooCoordinationClient(object):
    """
    ``ICoordinationClient`` implementation based on ``kazoo``.

    The instance owns the connection: ``start`` opens it and ``stop`` closes
    it. No connection is shared implicitly between instances.
    """

    def __init__(self, config, reactor):
        """
        Creates a new, not yet started, client for the given
        ``settings.CoordinationConfig``.
        """

        self.config = config
        self.reactor = reactor
        self.state = LOST
        self.pendingWatches = set()
        self.log = logging.Logger(__name__, system='coordination')

        self.client = KazooClient(hosts=config.getConnectionString(),
                timeout=config.timeout)
        self.client.add_listener(self._stateListener)


    def _stateListener(self, state):
        # Called in the kazoo thread
        self.reactor.callFromThread(self._stateChanged, state)


    def _stateChanged(self, state):
        if state == KazooState.CONNECTED:
            self.state = CONNECTED
            self.log.info('Connected to {0}', self.config.getConnectionString())
        elif state == KazooState.SUSPENDED:
            self.state = SUSPENDED
            self.log.warning('Connection suspended, waiting for reconnection')
        elif state == KazooState.LOST:
            self.state = LOST
            self.log.error('Session lost, failing {0} pending watches',
                    len(self.pendingWatches))
            self._failPendingWatches()


    def _failPendingWatches(self):
        pending, self.pendingWatches = self.pendingWatches, set()

        for watch in pending:
            watch.fire(WatchEvent(SESSION, LOST, watch.path))


    def _wrapWatch(self, path, callback):
        if callback is None:
            return None

        watch = _PendingWatch(path, callback, self.pendingWatches)
        self.pendingWatches.add(watch)

        def kazooWatch(event):
            # Called in the kazoo thread
            self.reactor.callFromThread(watch.fire,
                    WatchEvent(event.type, event.state, event.path))

        kazooWatch.pending = watch
        return kazooWatch


    def _forgetWatch(self, kazooWatch):
        """
        Stops tracking a watch which the service will not trigger. The watch
        callback is still invoked if a notification arrives anyway.
        """

        if kazooWatch is not None:
            self.pendingWatches.discard(kazooWatch.pending)


    def _call(self, func, *args, **kwargs):
        d = threads.deferToThreadPool(self.reactor,
                self.reactor.getThreadPool(), func, *args, **kwargs)
        d.addErrback(translateError)
        return d


    def start(self):
        """
        Connects to the coordination service. Fires with the client itself
        once the session is established.
        """

        self.log.info('Connecting to {0}', self.config.getConnectionString())

        d = self._call(self.client.start, self.config.timeout)
        d.addCallback(lambda _: self)
        return d


    def stop(self):
        """
        Closes the session, removing all the ephemeral nodes created by it.
        """

        def close():
            self.client.stop()
            self.client.close()

        self.log.info('Closing connection to {0}',
                self.config.getConnectionString())

        return self._call(close)


    def create(self, path, value=b'', ephemeral=False, sequence=False,
            makepath=False):
        return self._call(self.client.create, path, value,
                ephemeral=ephemeral, sequence=sequence, makepath=makepath)


    def ensurePath(self, path):
        d = self._call(self.client.ensure_path, path)
        d.addCallback(lambda _: None)
        return d


    def delete(self, path):
        return self._call(self.client.delete, path)


    def get(self, path, watch=None):
        kazooWatch = self._wrapWatch(path, watch)

        def notRegistered(failure):
            # No watch is left behind when the node does not exist
            self._forgetWatch(kazooWatch)
            return failure

        d = self._call(self.client.get, path, watch=kazooWatch)
        d.addCallbacks(lambda result: result[0], notRegistered)
        return d


    def set(self, path, value):
        d = self._call(self.client.set, path, value)
        d.addCallback(lambda _: None)
        return d


    def getChildren(self, path):
        return self._call(self.client.get_children, path)


    def exists(self, path, watch=None):
        kazooWatch = self._wrapWatch(path, watch)

        def gotStat(stat):
            if stat is None:
                # Only a creation would trigger the watch, stop tracking it
                self._forgetWatch(kazooWatch)
            return stat is not None

        def notRegistered(failure):
            self._forgetWatch(kazooWatch)
            return failure

        d = self._call(self.client.exists, path, watch=kazooWatch)
        d.addCallbacks(gotStat, notRegistered)
        return d



class _PendingWatch(object):
    """
    A watch registered on the service and not yet triggered. Firing it
    removes it from the pending set, so each watch is called at most once.
    """

    def __init__(self, path, callback, registry):
        self.path = path
        self.callback = callback
        self.registry = registry
        self.fired = False


    def fire(self, event):
        if self.fired:
            return

        self.fired = True
        self.registry.discard(self)
        self.callback(event)
