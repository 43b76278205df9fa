import calendar
import datetime

from vpool import error, lock, nodes, states
from vpool.test import zk_mock

from twisted.internet import task
from twisted.trial import unittest



NODE_ROOT = '/nodepool/nodes'
NODE_ID = '0000000001'
NODE_PATH = NODE_ROOT + '/' + NODE_ID



def epochMs(*args):
    return calendar.timegm(datetime.datetime(*args).timetuple()) * 1000



class HoldUntilTestCase(unittest.TestCase):

    def test_units(self):
        now = epochMs(2021, 3, 10, 12, 0)

        self.assertEqual(nodes.parseHoldUntil(now, '40m'), now + 40 * 60000)
        self.assertEqual(nodes.parseHoldUntil(now, '1h'), now + 3600000)
        self.assertEqual(nodes.parseHoldUntil(now, '2d'),
                epochMs(2021, 3, 12, 12, 0))
        self.assertEqual(nodes.parseHoldUntil(now, '3w'),
                epochMs(2021, 3, 31, 12, 0))
        self.assertEqual(nodes.parseHoldUntil(now, '99h'), now + 99 * 3600000)


    def test_calendarMonths(self):
        self.assertEqual(nodes.parseHoldUntil(epochMs(2021, 1, 31), '1M'),
                epochMs(2021, 2, 28))
        self.assertEqual(nodes.parseHoldUntil(epochMs(2020, 1, 31), '1M'),
                epochMs(2020, 2, 29))
        self.assertEqual(nodes.parseHoldUntil(epochMs(2021, 11, 15), '4M'),
                epochMs(2022, 3, 15))
        self.assertEqual(nodes.parseHoldUntil(epochMs(2021, 5, 1), '12M'),
                epochMs(2022, 5, 1))


    def test_invalid(self):
        for value in ('', 'm', '0m', '100h', '5y', '1.5h', 'h1', '-1d',
                '1 h'):
            self.assertRaises(error.HoldUntilError, nodes.parseHoldUntil, 0,
                    value)

        self.assertRaises(ValueError, nodes.parseHoldUntil, 0, 'forever')


    def test_formatTimestamp(self):
        self.assertEqual(nodes.formatTimestamp(0), '1970-01-01T00:00:00+00:00')
        self.assertEqual(nodes.formatTimestamp(epochMs(2021, 3, 10, 12, 30)),
                '2021-03-10T12:30:00+00:00')



class NodeRecordTestCase(unittest.TestCase):

    def setUp(self):
        self.client = zk_mock.FakeCoordinationClient()
        self.clock = task.Clock()

        self.client.writeDocument(NODE_PATH, state=states.READY,
                type=['ubuntu-jammy'], provider='cloud-1',
                interface_ip='192.0.2.10', connection_port=2022,
                host_keys=['ssh-ed25519 AAAA1', 'ssh-rsa AAAA2'])

        self.node = self.newNode()
        self.successResultOf(self.node.refresh())


    def newNode(self, nodeId=NODE_ID, lockTimeout=5):
        return nodes.NodeRecord(self.client, NODE_ROOT, nodeId,
                lockTimeout=lockTimeout, clock=self.clock)


    def lockContenders(self):
        return self.client.children(NODE_PATH + '/lock')


    def test_fields(self):
        self.assertEqual(self.node.path, NODE_PATH)
        self.assertEqual(self.node.state, states.READY)
        self.assertEqual(self.node.interfaceIP, '192.0.2.10')
        self.assertEqual(self.node.port, 2022)
        self.assertEqual(self.node.hostKeys, ['ssh-ed25519 AAAA1',
                'ssh-rsa AAAA2'])
        self.assertEqual(self.node.primaryHostKey, 'ssh-ed25519 AAAA1')
        self.assertEqual(self.node.label, 'ubuntu-jammy')
        self.assertEqual(self.node.provider, 'cloud-1')
        self.assertEqual(self.node.lock.path, NODE_PATH + '/lock')


    def test_portFallback(self):
        node = self.newNode()

        node.updateFromDict({'ssh_port': 2222})
        self.assertEqual(node.port, 2222)

        node.updateFromDict({'connection_port': 3333.0})
        self.assertEqual(node.port, 3333)

        self.assertEqual(self.newNode().port, nodes.DEFAULT_PORT)


    def test_missingFields(self):
        node = self.newNode()

        self.assertEqual(node.hostKeys, [])
        self.assertRaises(error.InvalidDocument, lambda: node.primaryHostKey)
        self.assertRaises(error.InvalidDocument, lambda: node.label)


    def test_stateSpellings(self):
        for value in ('in_use', 'IN-USE', 'inuse'):
            self.client.writeDocument(NODE_PATH, state=value)
            self.successResultOf(self.node.refresh())

            self.assertEqual(self.node.state, states.IN_USE)


    def test_setInUse(self):
        self.successResultOf(self.node.setInUse())

        self.assertTrue(self.node.lock.isLocked())
        self.assertEqual(len(self.lockContenders()), 1)

        document = self.client.document(NODE_PATH)

        self.assertEqual(document['state'], states.IN_USE)
        # Fields written by the pool are preserved
        self.assertEqual(document['interface_ip'], '192.0.2.10')
        self.assertEqual(document['host_keys'][0], 'ssh-ed25519 AAAA1')


    def test_setInUseReadsLatestDocument(self):
        self.client.writeDocument(NODE_PATH, interface_ip='192.0.2.99')

        self.successResultOf(self.node.setInUse())

        self.assertEqual(self.node.interfaceIP, '192.0.2.99')
        self.assertEqual(self.client.document(NODE_PATH)['interface_ip'],
                '192.0.2.99')


    def test_setInUseLocked(self):
        other = lock.DistributedLock(self.client, NODE_PATH + '/lock',
                clock=self.clock)
        self.successResultOf(other.acquire())

        d = self.node.setInUse()

        self.clock.advance(4.9)
        self.assertNoResult(d)

        self.clock.advance(0.1)
        self.failureResultOf(d, error.LockTimeout)

        self.assertFalse(self.node.lock.isLocked())
        self.assertEqual(self.client.document(NODE_PATH)['state'],
                states.READY)


    def test_setInUseWriteFailure(self):
        self.client.injectFailure('set', NODE_PATH,
                error.CoordinationDisconnected('connection loss'))

        self.failureResultOf(self.node.setInUse(),
                error.CoordinationDisconnected)

        self.assertFalse(self.node.lock.isLocked())
        self.assertEqual(self.lockContenders(), [])


    def test_release(self):
        self.successResultOf(self.node.setInUse())
        self.successResultOf(self.node.release())

        self.assertFalse(self.node.lock.isLocked())
        self.assertEqual(self.lockContenders(), [])
        self.assertEqual(self.client.document(NODE_PATH)['state'],
                states.USED)

        # Releasing again is harmless
        self.successResultOf(self.node.release())


    def test_releaseWriteFailure(self):
        self.successResultOf(self.node.setInUse())
        self.client.injectFailure('set', NODE_PATH,
                error.CoordinationError('boom'))

        self.failureResultOf(self.node.release(), error.CoordinationError)

        # The lock is released anyway
        self.assertFalse(self.node.lock.isLocked())
        self.assertEqual(self.lockContenders(), [])


    def test_hold(self):
        self.successResultOf(self.node.setInUse())

        holdUntil = epochMs(2021, 3, 11)
        self.successResultOf(self.node.hold('x' * 300, owner='user@host',
                holdUntil=holdUntil))

        document = self.client.document(NODE_PATH)

        self.assertEqual(document['state'], states.HOLD)
        self.assertEqual(document['comment'], 'x' * nodes.MAX_HOLD_REASON_LENGTH)
        self.assertEqual(document['hold_job'], 'user@host')
        self.assertEqual(document['hold_until'], holdUntil)

        self.assertEqual(self.node.holdUntil, holdUntil)
        self.assertEqual(self.node.holdJob, 'user@host')
        self.assertFalse(self.node.lock.isLocked())
        self.assertEqual(self.lockContenders(), [])


    def test_holdWithoutExpiry(self):
        self.successResultOf(self.node.hold(None))

        document = self.client.document(NODE_PATH)

        self.assertEqual(document['state'], states.HOLD)
        self.assertEqual(document['comment'], '')
        self.assertNotIn('hold_until', document)
        self.assertNotIn('hold_job', document)
