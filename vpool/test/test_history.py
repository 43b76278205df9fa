from vpool import error, history

from twisted.internet import task
from twisted.python import failure
from twisted.trial import unittest



class FakeRequest(object):

    def __init__(self, requestId):
        self.id = requestId



class FakeJob(object):

    def __init__(self, name, label='nodepool-ubuntu'):
        self.name = name
        self.label = label



class AttemptTestCase(unittest.TestCase):

    def setUp(self):
        self.clock = task.Clock()
        self.clock.advance(100)


    def test_formatDuration(self):
        self.assertEqual(history.formatDuration(0), '00:00:00')
        self.assertEqual(history.formatDuration(59.9), '00:00:59')
        self.assertEqual(history.formatDuration(3723), '01:02:03')
        self.assertEqual(history.formatDuration(100 * 3600), '100:00:00')


    def test_inProgress(self):
        attempt = history.Attempt(FakeRequest('0000000003'), self.clock)

        self.clock.advance(7)

        self.assertEqual(attempt.requestId, '0000000003')
        self.assertEqual(attempt.result, history.INPROGRESS)
        self.assertFalse(attempt.isDone())
        self.assertFalse(attempt.isSuccess())
        self.assertFalse(attempt.isFailure())
        self.assertEqual(attempt.getDurationSeconds(), 7)
        self.assertEqual(attempt.errorSummary(), '')


    def test_success(self):
        attempt = history.Attempt(FakeRequest('0000000003'), self.clock)

        self.clock.advance(5)
        attempt.succeed(['0000000001'])
        self.clock.advance(5)

        self.assertEqual(attempt.result, history.SUCCESS)
        self.assertTrue(attempt.isSuccess())
        self.assertEqual(attempt.nodes, ['0000000001'])
        self.assertEqual(attempt.getDurationSeconds(), 5)
        self.assertEqual(attempt.getDurationFormatted(), '00:00:05')


    def test_failureFromException(self):
        attempt = history.Attempt(None, self.clock)

        try:
            raise error.RequestTimeout('not fulfilled')
        except error.RequestTimeout as e:
            attempt.fail(e)

        self.assertEqual(attempt.requestId, None)
        self.assertEqual(attempt.result, history.FAILURE)
        self.assertTrue(attempt.isFailure())
        self.assertEqual(attempt.errorSummary(),
                'RequestTimeout: not fulfilled')
        self.assertIn('RequestTimeout', attempt.errorText)


    def test_failureFromFailure(self):
        attempt = history.Attempt(None, self.clock)

        attempt.fail(failure.Failure(error.LockTimeout('busy')))

        self.assertIsInstance(attempt.error, error.LockTimeout)
        self.assertEqual(attempt.errorSummary(), 'LockTimeout: busy')
        self.assertIn('LockTimeout', attempt.errorText)



class ProvisioningJobTestCase(unittest.TestCase):

    def setUp(self):
        self.clock = task.Clock()
        self.job = history.ProvisioningJob(FakeJob('job-1'), self.clock)


    def test_attempts(self):
        self.assertEqual(self.job.name, 'job-1')
        self.assertEqual(self.job.label, 'nodepool-ubuntu')
        self.assertEqual(self.job.currentAttempt, None)
        self.assertEqual(self.job.result, history.INPROGRESS)
        self.assertFalse(self.job.isDone())

        first = self.job.addAttempt(FakeRequest('0000000001'))
        self.clock.advance(10)
        first.fail(error.RequestFailed('failed'))

        self.assertTrue(self.job.isFailure())
        self.assertEqual(self.job.result, history.FAILURE)

        second = self.job.addAttempt(FakeRequest('0000000002'))
        self.assertIdentical(self.job.currentAttempt, second)
        self.assertEqual(self.job.result, history.INPROGRESS)

        self.clock.advance(20)
        second.succeed(['0000000005'])

        self.assertTrue(self.job.isDone())
        self.assertTrue(self.job.isSuccess())
        self.assertEqual(self.job.result, history.SUCCESS)
        self.assertEqual(self.job.getDurationSeconds(), 30)
        self.assertEqual(self.job.getDurationFormatted(), '00:00:30')


    def test_summary(self):
        for requestId in ('1', '2'):
            attempt = self.job.addAttempt(FakeRequest(requestId))
            self.clock.advance(65)
            attempt.fail(error.RequestTimeout('request ' + requestId))

        e = error.MaxAttemptsExceeded('Giving up', self.job.attempts)

        self.assertEqual(e.summary().splitlines(), [
            'Giving up',
            '  #1 FAILURE 00:01:05 RequestTimeout: request 1',
            '  #2 FAILURE 00:01:05 RequestTimeout: request 2',
        ])



class JobHistoryTestCase(unittest.TestCase):

    def test_newestFirst(self):
        jobs = history.JobHistory(maxLength=3)
        clock = task.Clock()

        for i in range(5):
            jobs.add(history.ProvisioningJob(FakeJob('job-{0}'.format(i)),
                    clock))

        self.assertEqual(len(jobs), 3)
        self.assertEqual([j.name for j in jobs], ['job-4', 'job-3', 'job-2'])

        self.assertEqual(jobs.getJob('job-3').name, 'job-3')
        self.assertEqual(jobs.getJob('job-0'), None)


    def test_iterateWhileAdding(self):
        jobs = history.JobHistory()
        clock = task.Clock()

        jobs.add(history.ProvisioningJob(FakeJob('job-0'), clock))

        for job in jobs:
            jobs.add(history.ProvisioningJob(FakeJob('job-1'), clock))

        self.assertEqual(len(jobs), 2)
