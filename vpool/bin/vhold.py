"""
Provisions a node from the pool and puts it on hold for manual inspection.
"""



import argparse
import getpass
import socket
import sys
import time

from twisted.internet import defer, task
from twisted.python import filepath

from zope.interface import implementer

from vpool import coordination, error, logging, nodes, provisioner
from vpool import resources, settings



@implementer(resources.IJobHandle)
class CommandLineJob(object):
    """
    The job on whose behalf the node is held: the user running the command.
    """

    def __init__(self, label, stream):
        self.name = '{0}@{1}'.format(getpass.getuser(), socket.gethostname())
        self.label = label
        self.stream = stream
        self.attempts = []


    def isActive(self):
        return True


    def logEvent(self, message, level):
        self.stream.write(message + '\n')


    def recordAttemptResult(self, attempt):
        self.attempts.append(attempt)



@implementer(resources.IAgentBootstrap)
class NoBootstrap(object):
    """
    Held nodes are left as built by the pool, nothing is installed on them.
    """

    def bootstrap(self, node, timeout):
        return defer.succeed(node.interfaceIP)



@defer.inlineCallbacks
def holdNode(reactor, args, config,
        clientFactory=coordination.KazooCoordinationClient, stream=None):
    """
    Provisions a node for ``args.label`` and holds it. Called by
    ``task.react`` with the running reactor.

    ``clientFactory`` is called with the coordination settings and the
    reactor to build the (not yet started) coordination client. Progress and
    the ssh command line are written to ``stream``, the standard output by
    default.
    """

    if stream is None:
        stream = sys.stdout

    coordinationConfig = settings.CoordinationConfig.fromConfig(config)
    poolConfig = settings.PoolConfig.fromConfig(config)

    try:
        holdUntil = nodes.parseHoldUntil(int(time.time() * 1000),
                args.duration)
    except error.HoldUntilError as e:
        sys.stderr.write('{0}\n'.format(e))
        raise SystemExit(2)

    client = clientFactory(coordinationConfig, reactor)
    yield client.start()

    try:
        orchestrator = provisioner.ProvisioningOrchestrator(client,
                poolConfig, NoBootstrap(), clock=reactor)
        job = CommandLineJob(args.label, stream)

        try:
            provisioned = yield orchestrator.provisionNode(job)
        except error.MaxAttemptsExceeded as e:
            sys.stderr.write(e.summary() + '\n')
            raise SystemExit(1)

        for node, address in provisioned:
            yield node.hold(args.reason, owner=job.name, holdUntil=holdUntil)

            stream.write('Node {0} held until {1}: ssh -p {2} {3}\n'.format(
                    node.id, nodes.formatTimestamp(holdUntil), node.port,
                    address))
    finally:
        yield client.stop()



def main():
    """
    Main program entry point.
    """

    parser = argparse.ArgumentParser(description='Provision a pool node and ' \
            'hold it for manual inspection.')
    parser.add_argument('-c', '--config', type=filepath.FilePath,
            help='Configuration file')
    parser.add_argument('-v', '--verbose', action='store_true',
            help='Print the full log to the standard output')
    parser.add_argument('-d', '--duration', default='1d',
            help='Hold duration (e.g. 40m, 1h, 2d, 3w, 4M; default: 1d)')
    parser.add_argument('-r', '--reason', default='held from the command line',
            help='Reason of the hold, stored on the node')
    parser.add_argument('label', help='Label of the node to provision')
    args = parser.parse_args()

    # Read configuration file
    config = settings.loadConfig(args.config)

    debug = config.getboolean('vpool', 'debug', fallback=False)

    # Configure logging
    if debug or args.verbose:
        log = logging.Logger()
        log.addObserver(logging.printFormatted, sys.stdout,
                severity=0 if debug else 20)

    task.react(holdNode, (args, config))



if __name__ == '__main__':
    sys.exit(main())
