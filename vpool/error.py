"""
vpool related errors.
"""



class VpoolException(Exception):
    """
    Base class for all the exceptions raised by the vpool package.
    """



class CoordinationError(VpoolException):
    """
    Raised when an operation on the coordination service fails.
    """



class NoNodeError(CoordinationError):
    """
    Raised when an operation targets a path which does not exist on the
    coordination service.
    """



class NodeExistsError(CoordinationError):
    """
    Raised when trying to create a path which already exists.
    """



class CoordinationDisconnected(CoordinationError):
    """
    Raised when the connection (or the whole session) to the coordination
    service is lost while an operation is in progress.

    Ephemeral nodes created by the lost session are removed by the service
    itself, thus the whole provisioning attempt can safely be retried.
    """



class ProvisioningError(VpoolException):
    """
    Base class for the transient errors which cause the current provisioning
    attempt to be abandoned and retried.
    """



class LockTimeout(ProvisioningError):
    """
    Raised when a lock predecessor is not released within the given timeout.
    """



class RequestTimeout(ProvisioningError):
    """
    Raised when a node request is not fulfilled within the request timeout.
    """



class RequestFailed(ProvisioningError):
    """
    Raised when the pool backend marks a node request as failed or aborted.
    """



class InvalidState(VpoolException):
    """
    Raised when an operation is invoked on an object which is not in the
    state required by the operation. This is a programming error and is never
    retried.
    """



class LockStateError(InvalidState):
    """
    Raised when acquiring an already acquired (or acquiring) lock or when
    releasing a lock which is not held.
    """



class SequenceParseError(ValueError, VpoolException):
    """
    Raised when a path which was expected to be sequential has no numeric
    suffix.
    """



class InvalidDocument(VpoolException):
    """
    Raised when a document read from the coordination service can't be
    decoded or misses a required field.
    """



class HoldUntilError(ValueError, VpoolException):
    """
    Raised when a hold duration string can't be parsed.
    """



class MaxAttemptsExceeded(VpoolException):
    """
    Raised when all the provisioning attempts for a job failed.

    The ``attempts`` attribute holds the list of ``history.Attempt`` instances
    which were made, in order.
    """

    def __init__(self, message, attempts=()):
        super(MaxAttemptsExceeded, self).__init__(message)
        self.attempts = list(attempts)


    def summary(self):
        """
        Returns an attempt by attempt, human readable, summary of the failed
        provisioning.
        """

        lines = [str(self.args[0])]

        for i, attempt in enumerate(self.attempts, 1):
            lines.append('  #{0} {1} {2} {3}'.format(i, attempt.result,
                    attempt.getDurationFormatted(), attempt.errorSummary()))

        return '\n'.join(lines)
