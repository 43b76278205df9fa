"""
Node records: the documents describing the nodes built by the pool.

A node handed over to us is locked for as long as we use it; the lock lives
below the node path, so the pool backend and other consumers see it too.
"""



import calendar
import datetime
import re

from twisted.internet import defer

from vpool import documents, error, lock, logging, states



DEFAULT_PORT = 22

MAX_HOLD_REASON_LENGTH = 256

HOLD_UNTIL_RE = re.compile(r'^([1-9][0-9]?)([mhdwM])$')

HOLD_UNITS = {
    'm': datetime.timedelta(minutes=1),
    'h': datetime.timedelta(hours=1),
    'd': datetime.timedelta(days=1),
    'w': datetime.timedelta(weeks=1),
}



def addMonths(moment, months):
    month = moment.month - 1 + months
    year = moment.year + month // 12
    month = month % 12 + 1
    day = min(moment.day, calendar.monthrange(year, month)[1])
    return moment.replace(year=year, month=month, day=day)


def parseHoldUntil(nowMs, value):
    """
    Converts a hold duration such as ``40m``, ``1h``, ``2d``, ``3w`` or
    ``4M`` (minutes, hours, days, weeks, months; from 1 to 99 units) to the
    epoch time, in milliseconds, at which the hold expires when starting at
    ``nowMs``.

    Raises ``error.HoldUntilError`` for unparsable values.
    """

    match = HOLD_UNTIL_RE.match(value.strip())

    if match is None:
        raise error.HoldUntilError('Invalid hold until string value: ' \
                '{0!r} - Expecting values similar to: 40m, 1h, 2d, 3w, ' \
                '4M'.format(value))

    number, unit = int(match.group(1)), match.group(2)

    start = datetime.datetime.fromtimestamp(nowMs / 1000.0,
            datetime.timezone.utc)

    if unit == 'M':
        end = addMonths(start, number)
    else:
        end = start + HOLD_UNITS[unit] * number

    return int(round(end.timestamp() * 1000))


def formatTimestamp(epochMs):
    """
    Formats an epoch time in milliseconds as an ISO 8601 UTC string.
    """

    moment = datetime.datetime.fromtimestamp(epochMs / 1000.0,
            datetime.timezone.utc)
    return moment.isoformat()



class NodeRecord(documents.Document):
    """
    A node allocated by the pool, stored at ``<nodeRoot>/<id>``.
    """

    VALID_STATES = states.NODE_STATES

    def __init__(self, client, nodeRoot, nodeId, identifier='vpool',
            lockTimeout=lock.DEFAULT_TIMEOUT, clock=None):
        super(NodeRecord, self).__init__(client,
                '{0}/{1}'.format(nodeRoot.rstrip('/'), nodeId))

        self.id = nodeId
        self.lockTimeout = lockTimeout
        self.lock = lock.DistributedLock(client, self.path + '/lock',
                identifier, clock)

        self.log = logging.Logger(__name__, system='node-' + nodeId)


    def __repr__(self):
        return '<NodeRecord {0} {1}>'.format(self.id, self.data.get('state'))


    @property
    def interfaceIP(self):
        return self.data.get('interface_ip')


    @property
    def port(self):
        """
        The port to connect to, falling back to the legacy ``ssh_port`` field
        and to port 22.
        """

        for key in ('connection_port', 'ssh_port'):
            value = self.data.get(key)
            if value is not None:
                return int(value)

        return DEFAULT_PORT


    @property
    def hostKeys(self):
        return list(self.data.get('host_keys') or [])


    @property
    def primaryHostKey(self):
        keys = self.hostKeys

        if not keys:
            raise error.InvalidDocument('Node {0} has no host keys'.format(
                    self.id))

        return keys[0]


    @property
    def types(self):
        return list(self.data.get('type') or [])


    @property
    def label(self):
        """
        The pool label of the node: the first of its types.
        """

        types = self.types

        if not types:
            raise error.InvalidDocument('Node {0} has no type'.format(self.id))

        return types[0]


    @property
    def provider(self):
        return self.data.get('provider')


    @property
    def holdUntil(self):
        return self.data.get('hold_until')


    @property
    def comment(self):
        return self.data.get('comment')


    @property
    def holdJob(self):
        return self.data.get('hold_job')


    @defer.inlineCallbacks
    def setInUse(self):
        """
        Locks the node and marks it as in use. The lock is released again if
        the state can't be written.
        """

        yield self.lock.acquire(self.lockTimeout)

        try:
            yield self.update(states.IN_USE)
        except Exception:
            yield self.lock.release()
            raise

        self.log.info('Node locked and marked in use')
        return self


    @defer.inlineCallbacks
    def release(self):
        """
        Marks the node as used, so that the pool reclaims it, and unlocks it
        if needed. Can be called on an already released node.
        """

        try:
            yield self.update(states.USED)
        finally:
            if self.lock.isLocked():
                yield self.lock.release()

        self.log.info('Node released')
        return self


    @defer.inlineCallbacks
    def hold(self, reason, owner=None, holdUntil=None):
        """
        Puts the node on hold: it is kept, unlocked, out of the pool
        reclamation cycle until it is deleted by hand.

        ``holdUntil`` is the hold expiration time as epoch milliseconds.
        """

        fields = {'comment': (reason or '')[:MAX_HOLD_REASON_LENGTH]}

        if owner is not None:
            fields['hold_job'] = owner

        if holdUntil is not None:
            fields['hold_until'] = int(holdUntil)

        try:
            yield self.update(states.HOLD, **fields)
        finally:
            if self.lock.isLocked():
                yield self.lock.release()

        self.log.info('Node held: {0}', fields['comment'])
        return self
