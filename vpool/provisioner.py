"""
Provisioning of pool nodes on behalf of external jobs.

The ``ProvisioningOrchestrator`` drives the full cycle for a job: submit a node
request, wait for the pool to fulfill it, lock and mark the allocated nodes as
in use, hand them to the agent bootstrap collaborator, and roll everything
back (then retry) if any step fails.
"""



import logging as py_logging
import threading

from twisted.internet import defer
from twisted.python import failure

from vpool import coordination, error, history, logging, nodes, requests
from vpool import resources, states, watcher



class ProvisioningOrchestrator(object):
    """
    Provisions nodes from the pool configured by a ``settings.PoolConfig``
    through a single, shared, coordination client.
    """

    def __init__(self, client, config, bootstrap, clock=None,
            jobHistory=None):
        """
        Creates a new orchestrator using the given
        ``coordination.ICoordinationClient``, ``settings.PoolConfig`` and
        ``resources.IAgentBootstrap``.

        ``clock`` is the ``IReactorTime`` provider used for all the timeouts
        (defaults to the global reactor).
        """

        if clock is None:
            from twisted.internet import reactor as clock

        self.client = coordination.ICoordinationClient(client)
        self.config = config
        self.bootstrap = resources.IAgentBootstrap(bootstrap)
        self.clock = clock

        if jobHistory is None:
            jobHistory = history.JobHistory(config.historyLength)
        self.history = jobHistory

        # Accessed by the host integration from other threads as well
        self.requests = []
        self.requestsLock = threading.Lock()

        self.log = logging.Logger(__name__, system='provisioner')


    def getRequests(self):
        """
        Returns the node requests currently in flight.
        """

        with self.requestsLock:
            return list(self.requests)


    def trackRequest(self, request):
        with self.requestsLock:
            self.requests.append(request)


    def untrackRequest(self, request):
        with self.requestsLock:
            if request in self.requests:
                self.requests.remove(request)


    def report(self, job, level, msg, *args):
        """
        Logs a message both locally and to the job.
        """

        message = msg.format(*args)
        self.log.log(message, system=job.name, severity=level)
        job.logEvent(message, level)


    def newNode(self, nodeId):
        return nodes.NodeRecord(self.client, self.config.nodeRoot, nodeId,
                identifier=self.config.requestor,
                lockTimeout=self.config.lockTimeout, clock=self.clock)


    @defer.inlineCallbacks
    def provisionNode(self, job, requestTimeout=None, maxAttempts=None,
            installTimeout=None):
        """
        Provisions a node for ``job`` (a ``resources.IJobHandle``), making at
        most ``maxAttempts`` attempts.

        Fires with a list of ``(node, handle)`` tuples, one for each
        allocated ``nodes.NodeRecord`` and the handle returned by the agent
        bootstrap for it, or with ``None`` if the job stopped being active
        before the nodes were provisioned.

        Fails with ``error.MaxAttemptsExceeded`` once all attempts failed.
        ``error.InvalidState`` errors are raised straight away.

        Missing parameters default to the values of the pool configuration.
        """

        job = resources.IJobHandle(job)

        if requestTimeout is None:
            requestTimeout = self.config.requestTimeout
        if maxAttempts is None:
            maxAttempts = self.config.maxAttempts
        if installTimeout is None:
            installTimeout = self.config.installTimeout

        nodeType = self.config.poolLabel(job.label)

        record = history.ProvisioningJob(job, self.clock)
        self.history.add(record)

        self.report(job, py_logging.INFO, 'Provisioning a {0} node (at most ' \
                '{1} attempts)', nodeType, maxAttempts)

        for attempt in range(1, maxAttempts + 1):
            if not job.isActive():
                self.report(job, py_logging.WARNING, 'Job is not active ' \
                        'anymore, giving up provisioning')
                return None

            try:
                provisioned = yield self.attemptProvision(job, record,
                        nodeType, requestTimeout, installTimeout)
            except error.InvalidState:
                self.report(job, py_logging.ERROR, 'Attempt {0}/{1} hit an ' \
                        'unrecoverable error', attempt, maxAttempts)
                raise
            except Exception as e:
                self.report(job, py_logging.WARNING, 'Attempt {0}/{1} ' \
                        'failed: {2}', attempt, maxAttempts,
                        record.currentAttempt.errorSummary() or e)

                if attempt == maxAttempts:
                    msg = 'Failed to provision node for label {0!r} after ' \
                            '{1} attempts'.format(job.label, maxAttempts)
                    self.report(job, py_logging.ERROR, msg)
                    raise error.MaxAttemptsExceeded(msg, record.attempts)
            else:
                self.report(job, py_logging.INFO, 'Provisioned node(s) {0} ' \
                        'in {1}', ', '.join(n.id for n, _ in provisioned),
                        record.getDurationFormatted())
                return provisioned


    @defer.inlineCallbacks
    def attemptProvision(self, job, record, nodeType, requestTimeout,
            installTimeout):
        """
        Makes a single provisioning attempt, recorded as a new
        ``history.Attempt`` on ``record``. The node request is deleted when
        the attempt ends, whatever its outcome.
        """

        request = requests.NodeRequest(self.client, self.config.requestRoot,
                [nodeType], self.config.requestor, self.config.priority,
                consumerLabel=job.label)
        attempt = record.addAttempt(request)
        self.trackRequest(request)

        try:
            yield request.create()

            self.report(job, py_logging.INFO, 'Submitted node request {0}',
                    request.id)

            yield self.waitForFulfillment(request, requestTimeout)

            accepted = yield self.acceptNodes(request)

            try:
                provisioned = yield self.handOff(job, accepted,
                        installTimeout)
            except Exception:
                self.log.warning('Hand off failed, releasing {0} nodes',
                        len(accepted), system=job.name)
                yield self.rollback(accepted)
                raise
        except Exception:
            attempt.fail(failure.Failure())
            job.recordAttemptResult(attempt)
            raise
        finally:
            self.untrackRequest(request)
            yield request.delete()

        attempt.succeed([node.id for node in accepted])
        job.recordAttemptResult(attempt)

        return provisioned


    @defer.inlineCallbacks
    def waitForFulfillment(self, request, timeout):
        """
        Waits until ``request`` is fulfilled. Fails with
        ``error.RequestFailed`` if the pool gives up on it and with
        ``error.RequestTimeout`` if nothing happens within ``timeout``
        seconds.
        """

        stateWatcher = watcher.RequestStateWatcher(self.client, request.path,
                states.FULFILLED, clock=self.clock)

        try:
            fulfilled = yield stateWatcher.waitUntilDone(timeout)
        finally:
            stateWatcher.stop()

        try:
            yield request.refresh()
        except error.NoNodeError:
            raise error.RequestFailed('Request {0} disappeared'.format(
                    request.id))

        state = request.state

        if state == states.FULFILLED:
            return request

        if state in (states.FAILED, states.ABORTED):
            raise error.RequestFailed('Request {0} {1}'.format(request.id,
                    state))

        if fulfilled:
            # The watcher saw the request fulfilled but its current content
            # says otherwise: someone is writing the request concurrently.
            raise error.RequestFailed('Request {0} went from fulfilled to ' \
                    '{1}'.format(request.id, state))

        raise error.RequestTimeout('Request {0} not fulfilled within {1} ' \
                'seconds (state: {2})'.format(request.id, timeout, state))


    @defer.inlineCallbacks
    def acceptNodes(self, request):
        """
        Locks and marks as in use every node allocated to the fulfilled
        ``request``. If any node can't be accepted, the nodes accepted so far
        are released and the error is raised again.

        Fires with the list of accepted ``nodes.NodeRecord`` instances.
        """

        nodeIds = request.getAllocatedNodes()

        if not nodeIds:
            raise error.RequestFailed('Request {0} was fulfilled without ' \
                    'nodes'.format(request.id))

        accepted = []

        try:
            for nodeId in nodeIds:
                self.log.debug('Accepting node {0} on behalf of request {1}',
                        nodeId, request.id)

                node = self.newNode(nodeId)
                yield node.setInUse()
                accepted.append(node)
        except Exception as e:
            self.log.warning('Failed to accept node: {0}, rolling back {1} ' \
                    'accepted nodes', e, len(accepted))
            yield self.rollback(accepted)
            raise

        return accepted


    @defer.inlineCallbacks
    def rollback(self, accepted):
        """
        Releases the given nodes. Failures are logged and do not stop the
        release of the remaining nodes.
        """

        for node in accepted:
            try:
                yield node.release()
            except Exception as e:
                self.log.warning('Failed to release node {0}: {1}', node.id,
                        e)


    @defer.inlineCallbacks
    def handOff(self, job, accepted, timeout):
        """
        Bootstraps each accepted node, waiting at most ``timeout`` seconds for
        each of them.
        """

        provisioned = []

        for node in accepted:
            self.report(job, py_logging.INFO, 'Bootstrapping node {0} ' \
                    '({1}:{2})', node.id, node.interfaceIP, node.port)

            d = defer.maybeDeferred(self.bootstrap.bootstrap, node, timeout)
            d.addTimeout(timeout, self.clock)

            try:
                handle = yield d
            except defer.TimeoutError:
                raise error.ProvisioningError('Bootstrap of node {0} did ' \
                        'not complete within {1} seconds'.format(node.id,
                        timeout))

            provisioned.append((node, handle))

        return provisioned
