"""
Interfaces of the collaborators the provisioning core works with: the job
which needs the nodes, the component bootstrapping an agent on them and the
reaper collecting what is left behind.
"""



from zope.interface import Interface, Attribute



class IJobHandle(Interface):
    """
    The external job on whose behalf nodes are provisioned.
    """

    name = Attribute("""A unique, human readable, identifier of the job""")

    label = Attribute("""The consumer facing label of the node the job needs
                         (the pool node type with the label prefix)""")


    def isActive():
        """
        Returns ``False`` once the job was cancelled or finished. No new
        provisioning attempt is started for inactive jobs.
        """


    def logEvent(message, level):
        """
        Reports a provisioning event to the job. ``level`` is one of the
        standard ``logging`` levels.
        """


    def recordAttemptResult(attempt):
        """
        Called with the ``history.Attempt`` instance once an attempt
        completes, successfully or not.
        """



class IAgentBootstrap(Interface):
    """
    Makes an accepted node usable by the job (e.g. connects to it over SSH and
    starts an agent there).
    """

    def bootstrap(node, timeout):
        """
        Bootstraps the given ``nodes.NodeRecord``, which is locked and in use.

        Returns a deferred firing with a handle for the bootstrapped node.
        The deferred is cancelled if it does not fire within ``timeout``
        seconds.
        """



class IReaper(Interface):
    """
    Periodically releases nodes and requests whose job is not active anymore.

    The provisioning core only leaves records in a well defined state: nodes
    are either locked and ``in-use``, ``used``, or ``hold``; requests are
    deleted at the end of each attempt.
    """

    def reap():
        """
        Runs one collection pass. Returns a deferred.
        """
