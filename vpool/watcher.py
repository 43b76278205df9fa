"""
Blocking waits on the state of a document, driven by coordination service
watches instead of polling.
"""



import json

from twisted.internet import defer
from twisted.python import failure

from vpool import coordination, error, logging, states



class RequestStateWatcher(object):
    """
    Watches the document at ``path`` until its ``state`` field reaches
    ``desiredState``.

    Coordination service watches fire only once: the watch is registered
    again on every notification, until the desired state is observed or the
    watcher is stopped, otherwise later transitions would go unnoticed.

    The wait also ends, unsuccessfully, when the document reaches one of the
    ``terminalStates`` or is deleted.
    """

    def __init__(self, client, path, desiredState,
            terminalStates=states.REQUEST_TERMINAL_STATES, clock=None):
        if clock is None:
            from twisted.internet import reactor as clock

        self.client = coordination.ICoordinationClient(client)
        self.path = path
        self.desiredState = desiredState
        self.terminalStates = frozenset(terminalStates) - set([desiredState])
        self.clock = clock

        self.state = None
        self.done = False
        self.stopped = False
        self.result = None
        self.waiters = []

        self.log = logging.Logger(__name__, system=path)

        self.registerWatch()


    def __repr__(self):
        return '<RequestStateWatcher {0} {1}->{2}>'.format(self.path,
                self.state, self.desiredState)


    @defer.inlineCallbacks
    def registerWatch(self):
        """
        Reads the document and arms a watch on it in a single operation, then
        checks if the state just read is the one we are waiting for.
        """

        if self.done or self.stopped:
            return

        self.log.debug('Watching for state {0}', self.desiredState)

        try:
            data = yield self.client.get(self.path, watch=self.process)
        except error.NoNodeError:
            self.log.warning('Watched document does not exist')
            self.signal(False)
            return
        except error.CoordinationError as e:
            self.log.warning('{0} while registering watch: {1}',
                    e.__class__.__name__, e)
            self.signal(failure.Failure(error.CoordinationDisconnected(
                    str(e))))
            return
        except Exception as e:
            self.log.warning('Unexpected {0} while registering watch: {1}',
                    e.__class__.__name__, e)
            self.signal(failure.Failure())
            return

        self.checkState(data)


    def checkState(self, data):
        try:
            self.state = states.parse(json.loads(data.decode('utf-8'))['state'])
        except (ValueError, KeyError, TypeError, error.InvalidDocument) as e:
            self.log.warning('Ignoring unreadable document: {0}', e)
            return

        if self.state == self.desiredState:
            self.log.debug('Desired state {0} reached', self.state)
            self.signal(True)
        elif self.state in self.terminalStates:
            self.log.info('Terminal state {0} reached', self.state)
            self.signal(False)


    def process(self, event):
        """
        Watch callback.
        """

        if self.done or self.stopped:
            return

        if event.type == coordination.SESSION:
            self.log.warning('Session lost while watching')
            self.signal(failure.Failure(error.CoordinationDisconnected(
                    'Session lost while watching {0}'.format(self.path))))
        elif event.type == coordination.DELETED:
            self.log.warning('Watched document was deleted')
            self.signal(False)
        else:
            self.registerWatch()


    def signal(self, result):
        """
        Ends the wait, releasing every waiter with ``result``. Waiters coming
        later get the same result straight away.
        """

        if self.done:
            return

        self.done = True
        self.result = result

        waiters, self.waiters = self.waiters, []

        for waiter in waiters:
            waiter.callback(result)


    def stop(self):
        """
        Abandons the wait. No watch will be registered anymore and current
        waiters are released with ``False``.
        """

        self.stopped = True
        self.signal(False)


    def waitUntilDone(self, timeout):
        """
        Returns a deferred firing with ``True`` if the desired state is
        reached within ``timeout`` seconds and with ``False`` otherwise (time
        out, terminal state or deleted document).

        Fails with ``error.CoordinationDisconnected`` if the session is lost
        and with the original error if the watch could not be registered for
        any other reason.
        """

        if self.done:
            return defer.succeed(self.result)

        waiter = defer.Deferred()
        self.waiters.append(waiter)

        def expire():
            if waiter in self.waiters:
                self.log.debug('Gave up waiting after {0} seconds', timeout)
                self.waiters.remove(waiter)
                waiter.callback(False)

        call = self.clock.callLater(timeout, expire)

        def cancelTimer(result):
            if call.active():
                call.cancel()
            return result

        return waiter.addBoth(cancelTimer)
