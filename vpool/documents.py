"""
Base class for the JSON documents stored by the pool on the coordination
service.
"""



import json
import time

from twisted.internet import defer

from vpool import coordination, error, states



def decode(data):
    """
    Decodes the raw content of a document to a dictionary.
    """

    try:
        document = json.loads(data.decode('utf-8'))
    except (UnicodeDecodeError, ValueError) as e:
        raise error.InvalidDocument('Cannot decode document: {0}'.format(e))

    if not isinstance(document, dict):
        raise error.InvalidDocument('Expected a mapping, got {0!r}'.format(
                document))

    return document


def encode(document):
    return json.dumps(document, sort_keys=True).encode('utf-8')



class Document(object):
    """
    A mapping of fields stored verbatim at one coordination service path.

    The local view (``data``) is only updated by ``refresh``; ``update``
    always re-reads the stored document before writing, so that fields
    written concurrently by the pool backend are not overwritten.
    """

    VALID_STATES = frozenset()

    def __init__(self, client, path=None, data=None):
        self.client = coordination.ICoordinationClient(client)
        self.path = path
        self.data = dict(data or {})


    def __getitem__(self, key):
        return self.data[key]


    def get(self, key, default=None):
        return self.data.get(key, default)


    @property
    def state(self):
        """
        The normalized state of the document, or ``None`` if it has none.
        """

        value = self.data.get('state')

        if value is None:
            return None

        return states.parse(value, self.VALID_STATES or None)


    @property
    def stateTime(self):
        return self.data.get('state_time')


    def setState(self, state):
        """
        Changes the state of the local view only.
        """

        if self.VALID_STATES and state not in self.VALID_STATES:
            raise error.InvalidState('{0!r} is not a valid state for ' \
                    '{1}'.format(state, self.__class__.__name__))

        self.data['state'] = state
        self.data['state_time'] = time.time()


    def serialize(self):
        return encode(self.data)


    def updateFromDict(self, document):
        self.data.update(document)


    @defer.inlineCallbacks
    def refresh(self):
        """
        Replaces the local view with the document currently stored on the
        coordination service. Fires with the document itself.
        """

        data = yield self.client.get(self.path)
        self.data = decode(data)
        return self


    @defer.inlineCallbacks
    def update(self, state=None, **fields):
        """
        Read-modify-write of the stored document: the given fields (and the
        state, if given) are written over the current content.
        """

        yield self.refresh()

        if state is not None:
            self.setState(state)

        self.data.update(fields)

        yield self.client.set(self.path, self.serialize())
        return self
