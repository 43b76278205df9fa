"""
Configuration management for the different vpool components.

Settings are read from INI style files and turned into explicit configuration
objects which are passed to the constructors of the components needing them.
"""



import os
import configparser



DEFAULT_FILES = [
    '/etc/vpool/vpool.conf',
    os.path.expanduser('~/.vpool.conf'),
]



def loadConfig(path=None, defaults=None):
    """
    Loads and parses an INI style configuration file using Python's built-in
    configparser module.

    If path (t.p.filepath.Filepath instance) is specified, load it.

    If ``defaults`` (a list of strings) is given, try to load each entry as a
    file, without throwing any error if the operation fails.

    If ``defaults`` is not given, the following locations are tried:

     * /etc/vpool/vpool.conf
     * ~/.vpool.conf

    To completely disable defaults loading, pass in an empty list or ``False``.

    Returns the ConfigParser instance used to load and parse the files.
    """

    if defaults is None:
        defaults = DEFAULT_FILES

    config = configparser.ConfigParser()

    if defaults:
        config.read(defaults)

    if path:
        with path.open() as fh:
            config.read_string(fh.read().decode('utf-8'), source=path.path)

    return config



class CoordinationConfig(object):
    """
    Connection parameters for the coordination service.
    """

    SECTION = 'zookeeper'

    def __init__(self, hosts, root=None, timeout=10.0):
        if not hosts:
            raise ValueError('At least one coordination host is required')

        self.hosts = hosts
        self.root = root or ''
        self.timeout = timeout


    @classmethod
    def fromConfig(cls, config):
        section = cls.SECTION

        return cls(
            hosts=config.get(section, 'hosts'),
            root=config.get(section, 'root', fallback=''),
            timeout=config.getfloat(section, 'timeout', fallback=10.0),
        )


    def getConnectionString(self):
        """
        Returns the host list in the format understood by the client library,
        with the chroot appended if one was configured.
        """

        hosts = ','.join(h.strip() for h in self.hosts.split(',') if h.strip())

        root = self.root.strip('/')

        if root:
            hosts += '/' + root

        return hosts


    def __eq__(self, other):
        if not isinstance(other, CoordinationConfig):
            return NotImplemented
        return self.__dict__ == other.__dict__


    def __repr__(self):
        return '<CoordinationConfig {0}>'.format(self.getConnectionString())



class PoolConfig(object):
    """
    Layout of the pool data on the coordination service and provisioning
    parameters used when requesting nodes from it.
    """

    SECTION = 'nodepool'

    DEFAULTS = {
        'request_root': '/nodepool/requests',
        'node_root': '/nodepool/nodes',
        'priority': '100',
        'requestor': 'vpool',
        'label_prefix': 'nodepool-',
        'request_timeout': 1200.0,
        'max_attempts': 3,
        'install_timeout': 300.0,
        'lock_timeout': 5.0,
        'history_length': 100,
    }

    def __init__(self, **kwargs):
        unknown = set(kwargs) - set(self.DEFAULTS)

        if unknown:
            raise TypeError('Unknown pool settings: {0}'.format(
                    ', '.join(sorted(unknown))))

        values = dict(self.DEFAULTS, **kwargs)

        self.requestRoot = values['request_root'].rstrip('/')
        self.nodeRoot = values['node_root'].rstrip('/')
        self.priority = str(values['priority'])
        self.requestor = values['requestor']
        self.labelPrefix = values['label_prefix']
        self.requestTimeout = float(values['request_timeout'])
        self.maxAttempts = int(values['max_attempts'])
        self.installTimeout = float(values['install_timeout'])
        self.lockTimeout = float(values['lock_timeout'])
        self.historyLength = int(values['history_length'])

        if self.maxAttempts < 1:
            raise ValueError('max_attempts has to be at least 1')


    @classmethod
    def fromConfig(cls, config):
        section = cls.SECTION
        kwargs = {}

        if not config.has_section(section):
            return cls()

        for key, default in cls.DEFAULTS.items():
            if not config.has_option(section, key):
                continue

            if isinstance(default, float):
                kwargs[key] = config.getfloat(section, key)
            elif isinstance(default, int):
                kwargs[key] = config.getint(section, key)
            else:
                kwargs[key] = config.get(section, key)

        return cls(**kwargs)


    def poolLabel(self, label):
        """
        Returns the pool node type for a consumer facing label, by stripping
        the configured label prefix.

        Raises ``ValueError`` if the label does not carry the prefix.
        """

        if not label.startswith(self.labelPrefix):
            raise ValueError('Label {0!r} does not start with the pool ' \
                    'prefix {1!r}'.format(label, self.labelPrefix))

        return label[len(self.labelPrefix):]


    def consumerLabel(self, poolLabel):
        """
        Returns the consumer facing label for a pool node type.
        """

        return self.labelPrefix + poolLabel


    def requestPath(self):
        return '{0}/{1}-'.format(self.requestRoot, self.priority)


    def nodePath(self, nodeId):
        return '{0}/{1}'.format(self.nodeRoot, nodeId)
