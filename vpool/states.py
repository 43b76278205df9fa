"""
States shared with the pool backend for node requests and node records.

The values are the strings the pool backend writes into its documents. Other
producers of the same data do not agree on how to spell ``in-use``, so every
state read from the coordination service goes through ``parse``.
"""



from vpool import error



# Node request states
REQUESTED = 'requested'
PENDING = 'pending'
FULFILLED = 'fulfilled'

# Node states
BUILDING = 'building'
UPLOADING = 'uploading'
READY = 'ready'
DELETING = 'deleting'
TESTING = 'testing'
IN_USE = 'in-use'
USED = 'used'
HOLD = 'hold'
INIT = 'init'

# Shared by requests and nodes
FAILED = 'failed'
# Transient failure (e.g. over quota) not counted as a failed launch
ABORTED = 'aborted'


REQUEST_STATES = frozenset([REQUESTED, PENDING, FULFILLED, FAILED, ABORTED])

NODE_STATES = frozenset([BUILDING, UPLOADING, READY, DELETING, FAILED, TESTING,
        IN_USE, USED, HOLD, INIT, ABORTED])

# A request in one of these states will not change anymore
REQUEST_TERMINAL_STATES = frozenset([FULFILLED, FAILED, ABORTED])


def _key(value):
    return value.lower().replace('-', '').replace('_', '')


_LOOKUP = dict((_key(s), s) for s in REQUEST_STATES | NODE_STATES)



def parse(value, valid=None):
    """
    Normalizes a state string read from a document to one of the constants
    of this module. Case, hyphens and underscores are ignored, so ``in-use``,
    ``IN_USE`` and ``inuse`` all map to ``IN_USE``.

    If ``valid`` is given, the parsed state must also be a member of it.

    Raises ``error.InvalidDocument`` for unknown states.
    """

    if not isinstance(value, str):
        raise error.InvalidDocument('State has to be a string, got ' \
                '{0!r}'.format(value))

    try:
        state = _LOOKUP[_key(value.strip())]
    except KeyError:
        raise error.InvalidDocument('Unknown state: {0!r}'.format(value))

    if valid is not None and state not in valid:
        raise error.InvalidDocument('State {0!r} is not valid here'.format(
                value))

    return state
