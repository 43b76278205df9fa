"""
Book-keeping of the provisioning attempts made for each job, used to report
on provisioning failures and durations.
"""



import threading
import traceback

from twisted.python import failure



INPROGRESS, SUCCESS, FAILURE = 'INPROGRESS', 'SUCCESS', 'FAILURE'

MAX_HISTORY_LENGTH = 100



def formatDuration(seconds):
    """
    Formats a duration in seconds as ``hh:mm:ss``.
    """

    seconds = int(seconds)
    return '{0:02d}:{1:02d}:{2:02d}'.format(seconds // 3600,
            (seconds % 3600) // 60, seconds % 60)



class Attempt(object):
    """
    A single request/accept cycle made for a job.
    """

    def __init__(self, request, clock):
        self.request = request
        self.clock = clock
        self.startTime = clock.seconds()
        self.finishTime = None
        self.error = None
        self.errorText = None
        self.nodes = []


    def __repr__(self):
        return '<Attempt result={0} duration={1} secs, nodes={2}>'.format(
                self.result, self.getDurationSeconds(), self.nodes)


    @property
    def requestId(self):
        return self.request.id if self.request is not None else None


    def succeed(self, nodes=()):
        self.nodes = list(nodes)
        self.finishTime = self.clock.seconds()


    def fail(self, reason):
        """
        Marks the attempt as failed. ``reason`` is either an exception or a
        ``twisted.python.failure.Failure``.
        """

        if isinstance(reason, failure.Failure):
            self.error = reason.value
            self.errorText = reason.getTraceback()
        else:
            self.error = reason
            self.errorText = ''.join(traceback.format_exception(type(reason),
                    reason, reason.__traceback__))

        self.finishTime = self.clock.seconds()


    def isDone(self):
        return self.finishTime is not None


    def isFailure(self):
        return self.error is not None


    def isSuccess(self):
        return self.isDone() and self.error is None


    @property
    def result(self):
        if not self.isDone():
            return INPROGRESS
        elif self.isSuccess():
            return SUCCESS
        else:
            return FAILURE


    def errorSummary(self):
        if self.error is None:
            return ''
        return '{0}: {1}'.format(self.error.__class__.__name__, self.error)


    def getDurationSeconds(self):
        end = self.finishTime

        if end is None:
            end = self.clock.seconds()

        return end - self.startTime


    def getDurationFormatted(self):
        return formatDuration(self.getDurationSeconds())



class ProvisioningJob(object):
    """
    The attempts made to provision nodes for one ``resources.IJobHandle``.
    """

    def __init__(self, job, clock):
        self.job = job
        self.clock = clock
        self.attempts = []


    def __repr__(self):
        return '<ProvisioningJob {0} label={1} attempts={2}>'.format(
                self.name, self.label, len(self.attempts))


    @property
    def name(self):
        return self.job.name


    @property
    def label(self):
        return self.job.label


    def addAttempt(self, request):
        attempt = Attempt(request, self.clock)
        self.attempts.append(attempt)
        return attempt


    @property
    def currentAttempt(self):
        if not self.attempts:
            return None
        return self.attempts[-1]


    def isDone(self):
        return self.currentAttempt is not None and self.currentAttempt.isDone()


    def isSuccess(self):
        return self.currentAttempt is not None and \
                self.currentAttempt.isSuccess()


    def isFailure(self):
        return self.currentAttempt is not None and \
                self.currentAttempt.isFailure()


    @property
    def result(self):
        if self.currentAttempt is None:
            return INPROGRESS
        return self.currentAttempt.result


    def getDurationSeconds(self):
        return sum(a.getDurationSeconds() for a in self.attempts)


    def getDurationFormatted(self):
        return formatDuration(self.getDurationSeconds())



class JobHistory(object):
    """
    The most recent provisioning jobs, newest first. Safe to use from
    multiple threads.
    """

    def __init__(self, maxLength=MAX_HISTORY_LENGTH):
        self.maxLength = maxLength
        self.lock = threading.Lock()
        self.jobs = []


    def add(self, job):
        with self.lock:
            self.jobs.insert(0, job)
            del self.jobs[self.maxLength:]


    def __iter__(self):
        with self.lock:
            jobs = list(self.jobs)
        return iter(jobs)


    def __len__(self):
        with self.lock:
            return len(self.jobs)


    def getJob(self, name):
        for job in self:
            if job.name == name:
                return job
        return None
