"""
Node requests: the documents through which nodes are asked to the pool.

A request is created as an ephemeral sequential node below the request root;
the pool backend moves it through ``pending`` to ``fulfilled`` (filling the
``nodes`` field) or ``failed``. The requestor deletes it once done with it.
"""



import time

from twisted.internet import defer

from vpool import documents, error, logging, states



def idForPath(path):
    """
    Returns the id of a request, i.e. the sequence number the coordination
    service appended to ``<requestRoot>/<priority>-``.
    """

    name = path.rsplit('/', 1)[-1]

    if '-' not in name:
        raise error.SequenceParseError('Invalid node path while looking ' \
                'for request id: {0!r}'.format(path))

    requestId = name.rsplit('-', 1)[1]

    if not requestId.isdigit():
        raise error.SequenceParseError('Invalid node path while looking ' \
                'for request id: {0!r}'.format(path))

    return requestId



class NodeRequest(documents.Document):
    """
    A request for one node of each of the given ``nodeTypes``.
    """

    VALID_STATES = states.REQUEST_STATES

    def __init__(self, client, requestRoot, nodeTypes, requestor,
            priority='100', consumerLabel=None):
        nodeTypes = list(nodeTypes)

        if not nodeTypes:
            raise ValueError('At least one node type has to be requested')

        super(NodeRequest, self).__init__(client, data={
            'node_types': nodeTypes,
            'requestor': requestor,
            'state': states.REQUESTED,
            'state_time': time.time(),
        })

        if consumerLabel is not None:
            self.data['consumer_label'] = consumerLabel

        self.requestRoot = requestRoot.rstrip('/')
        self.priority = str(priority)
        self.id = None
        self.log = logging.Logger(__name__, system='request')


    def __repr__(self):
        return '<NodeRequest {0} {1} {2}>'.format(self.id,
                self.data.get('state'), self.nodeTypes)


    @property
    def nodeTypes(self):
        return list(self.data['node_types'])


    @property
    def requestor(self):
        return self.data.get('requestor')


    @property
    def consumerLabel(self):
        return self.data.get('consumer_label')


    @property
    def poolLabel(self):
        return self.data['node_types'][0]


    def isFulfilled(self):
        return self.state == states.FULFILLED


    @defer.inlineCallbacks
    def create(self):
        """
        Writes the request below ``<requestRoot>/<priority>-`` and records
        the path and id assigned by the coordination service.
        """

        if self.path is not None:
            raise error.InvalidState('Request {0} was already ' \
                    'submitted'.format(self.id))

        basePath = '{0}/{1}-'.format(self.requestRoot, self.priority)

        path = yield self.client.create(basePath, self.serialize(),
                ephemeral=True, sequence=True, makepath=True)

        self.path = path
        self.id = idForPath(path)
        self.log = self.log.bind(system='request-' + self.id)

        self.log.info('Requested nodes of type {0}',
                ', '.join(self.nodeTypes))

        return self


    def getAllocatedNodes(self):
        """
        Returns the ids of the nodes allocated to this request.

        Raises ``error.InvalidState`` if the request is not fulfilled.
        """

        if self.state != states.FULFILLED:
            raise error.InvalidState('Attempt to get allocated nodes from ' \
                    'request {0} before it has been fulfilled ' \
                    '({1})'.format(self.id, self.data.get('state')))

        return list(self.data.get('nodes', []))


    @defer.inlineCallbacks
    def delete(self):
        """
        Removes the request from the coordination service. Failures are only
        logged: the request is ephemeral and goes away with the session.
        """

        if self.path is None:
            return

        try:
            yield self.client.delete(self.path)
        except error.NoNodeError:
            self.log.debug('Request already removed')
        except error.CoordinationError as e:
            self.log.warning('Failed to delete request: {0}', e)
        else:
            self.log.debug('Request deleted')
