"""
Fair mutual exclusion over a coordination service path.

Each contender creates an ephemeral sequential node below the locked path and
waits for all the contenders with a lower sequence number to go away. As the
contender nodes are ephemeral, a lost session releases the lock (or the place
in the queue) automatically.
"""



import re
import uuid

from twisted.internet import defer

from vpool import coordination, error, logging



LOCK_NODE_NAME = '__lock__'

DEFAULT_TIMEOUT = 5

UNLOCKED, LOCKING, LOCKED = 'UNLOCKED', 'LOCKING', 'LOCKED'

# Our own contenders end in "-<seq>", kazoo's lock recipe in "__lock__<seq>"
SEQUENCE_RE = re.compile(r'[-_](\d+)$')



def sequenceNumberForPath(path):
    """
    Returns the sequence number appended by the coordination service to the
    name of a sequential node.

    Raises ``error.SequenceParseError`` if the path has no numeric suffix.
    """

    match = SEQUENCE_RE.search(path)

    if match is None:
        raise error.SequenceParseError('Found non sequential node: ' \
                '{0!r}'.format(path))

    return int(match.group(1))



class DistributedLock(object):
    """
    A lock over ``path``, shared with every process using the same path on
    the same coordination service.

    A lock instance can only be held once: acquiring it again before releasing
    it raises ``error.LockStateError``. Use a separate instance for each
    concurrent contender.
    """

    def __init__(self, client, path, identifier='vpool', clock=None):
        """
        Creates a new, unlocked, lock over ``path`` using the given
        ``coordination.ICoordinationClient``.

        ``identifier`` is written in the contender node to ease debugging,
        ``clock`` is the ``IReactorTime`` provider used for the timeouts
        (defaults to the global reactor).
        """

        if clock is None:
            from twisted.internet import reactor as clock

        self.client = coordination.ICoordinationClient(client)
        self.path = path.rstrip('/')
        self.identifier = identifier
        self.clock = clock

        self.prefix = '{0}{1}-'.format(LOCK_NODE_NAME, uuid.uuid4().hex)
        self.createPath = '{0}/{1}'.format(self.path, self.prefix)

        self.status = UNLOCKED
        self.node = None
        self.sequence = None

        self.log = logging.Logger(__name__, system=self.path)


    def __repr__(self):
        return '<DistributedLock {0} {1}>'.format(self.path, self.status)


    def isLocked(self):
        return self.status == LOCKED


    def predecessors(self, contenders):
        """
        Returns the names of the contenders which are ahead of us in the queue,
        ordered by sequence number.
        """

        ahead = []

        for contender in contenders:
            contenderSequence = sequenceNumberForPath(contender)
            if contenderSequence < self.sequence:
                ahead.append((contenderSequence, contender))

        return [contender for _, contender in sorted(ahead)]


    @defer.inlineCallbacks
    def waitForNodeRemoval(self, path, deadline):
        """
        Returns a deferred firing as soon as the node at ``path`` does not
        exist anymore.

        Fails with ``error.LockTimeout`` if the node still exists at the
        ``deadline`` (in ``clock.seconds()`` units) and with
        ``error.CoordinationDisconnected`` if the session is lost.
        """

        while True:
            changed = defer.Deferred()

            def watch(event, changed=changed):
                if not changed.called:
                    changed.callback(event)

            exists = yield self.client.exists(path, watch=watch)

            if not exists:
                return

            remaining = deadline - self.clock.seconds()

            if remaining <= 0:
                raise error.LockTimeout('Timeout acquiring lock for node: ' \
                        '{0}'.format(self.path))

            changed.addTimeout(remaining, self.clock)

            try:
                event = yield changed
            except defer.TimeoutError:
                raise error.LockTimeout('Timeout acquiring lock for node: ' \
                        '{0}'.format(self.path))

            if event.type == coordination.SESSION:
                raise error.CoordinationDisconnected('Session lost while ' \
                        'waiting for {0}'.format(path))


    @defer.inlineCallbacks
    def acquire(self, timeout=DEFAULT_TIMEOUT):
        """
        Acquires the lock, waiting at most ``timeout`` seconds for the
        contenders which came before us.

        Fails with ``error.LockStateError`` if this instance is already
        locked or locking, ``error.LockTimeout`` on timeout and
        ``error.CoordinationDisconnected`` if the connection goes away. In
        the last two cases our place in the queue is given up.
        """

        if self.status != UNLOCKED:
            raise error.LockStateError('Lock on {0} is already {1}'.format(
                    self.path, self.status.lower()))

        self.status = LOCKING
        deadline = self.clock.seconds() + timeout
        identifier = self.identifier.encode('utf-8')

        try:
            yield self.client.ensurePath(self.path)

            self.node = yield self.client.create(self.createPath, identifier,
                    ephemeral=True, sequence=True)
            self.sequence = sequenceNumberForPath(self.node)

            self.log.debug('Lock contender created: {0}', self.node)

            while True:
                contenders = yield self.client.getChildren(self.path)
                ahead = self.predecessors(contenders)

                if not ahead:
                    break

                self.log.debug('Waiting for {0} contenders ahead of us',
                        len(ahead))

                # Contenders arriving while we wait always get a higher
                # sequence number, the list is checked again anyway.
                for contender in ahead:
                    yield self.waitForNodeRemoval(
                            '{0}/{1}'.format(self.path, contender), deadline)
        except Exception:
            yield self._abandon()
            raise

        self.status = LOCKED
        self.log.debug('Lock acquired with sequence {0}', self.sequence)


    @defer.inlineCallbacks
    def _abandon(self):
        node, self.node = self.node, None
        self.sequence = None
        self.status = UNLOCKED

        if node is None:
            return

        try:
            yield self.client.delete(node)
        except error.CoordinationError as e:
            # The node is ephemeral and goes away with the session anyway
            self.log.warning('Could not remove lock contender {0}: {1}',
                    node, e)


    @defer.inlineCallbacks
    def release(self):
        """
        Releases the lock. Fails with ``error.LockStateError`` if the lock is
        not held.
        """

        if self.status != LOCKED:
            raise error.LockStateError('Lock on {0} is not held ({1})'.format(
                    self.path, self.status.lower()))

        node, self.node = self.node, None
        self.sequence = None
        self.status = UNLOCKED

        try:
            yield self.client.delete(node)
        except error.NoNodeError:
            self.log.warning('Lock node {0} was already gone', node)

        self.log.debug('Lock released')
