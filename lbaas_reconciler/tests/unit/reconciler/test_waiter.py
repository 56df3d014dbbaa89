# Licensed under the Apache License, Version 2.0 (the "License"); you may
# not use this file except in compliance with the License. You may obtain
# a copy of the License at
#
#      http://www.apache.org/licenses/LICENSE-2.0
#
# Unless required by applicable law or agreed to in writing, software
# distributed under the License is distributed on an "AS IS" BASIS, WITHOUT
# WARRANTIES OR CONDITIONS OF ANY KIND, either express or implied. See the
# License for the specific language governing permissions and limitations
# under the License.

from unittest import mock

from openstack import exceptions as os_exc
from openstack.load_balancer.v2 import listener as o_lis

from lbaas_reconciler import exceptions as lb_exc
from lbaas_reconciler.reconciler import waiter
from lbaas_reconciler.tests import base as test_base
from lbaas_reconciler.tests.unit import lbaas_fixtures


def _listener(status):
    return o_lis.Listener(id='listener-id', provisioning_status=status)


class TestDeadline(test_base.TestCase):

    def setUp(self):
        super(TestDeadline, self).setUp()
        self.clock = self.useFixture(lbaas_fixtures.FakeClock())

    def test_default_timeout(self):
        self.set_opt('activation_timeout', 42)

        self.assertEqual(42, waiter.Deadline().remaining())

    def test_remaining(self):
        deadline = waiter.Deadline(10)
        self.clock.advance(4)

        self.assertEqual(6, deadline.remaining())
        self.assertFalse(deadline.expired())

        self.clock.advance(6)
        self.assertEqual(0, deadline.remaining())
        self.assertTrue(deadline.expired())

    def test_sleep_bounded_by_deadline(self):
        deadline = waiter.Deadline(10)
        self.clock.advance(8)

        self.assertRaises(lb_exc.ProvisioningTimeoutError, deadline.sleep, 5)
        self.assertEqual([2], self.clock.slept)
        self.assertEqual(10, self.clock.elapsed)

    def test_sleep(self):
        deadline = waiter.Deadline(10)

        self.assertEqual(3, deadline.sleep(3))
        self.assertEqual(7, deadline.remaining())

    def test_cancel(self):
        deadline = waiter.Deadline(10)
        deadline.cancel()

        self.assertTrue(deadline.cancelled)
        self.assertEqual(0, deadline.remaining())
        ex = self.assertRaises(lb_exc.ProvisioningTimeoutError,
                               deadline.check, 'pool p', 'PENDING_CREATE')
        self.assertIn('pool p', str(ex))
        self.assertIn('PENDING_CREATE', str(ex))
        self.assertEqual([], self.clock.slept)


class TestDeadlineThreads(test_base.TestCase):

    def test_cancel_wakes_sleeper(self):
        deadline = waiter.Deadline(3600)
        deadline._cancelled.set()

        self.assertTrue(deadline._pause(3600))


class TestNextInterval(test_base.TestCase):

    @mock.patch('random.gauss', return_value=0.8)
    def test_next_interval(self, m_gauss):
        self.assertAlmostEqual(1.6, waiter.next_interval(1))
        self.assertEqual(waiter.MAX_POLL_INTERVAL, waiter.next_interval(12))


class TestProvisioningWaiter(test_base.TestCase):

    def setUp(self):
        super(TestProvisioningWaiter, self).setUp()
        self.clock = self.useFixture(lbaas_fixtures.FakeClock())
        self.waiter = waiter.ProvisioningWaiter(waiter.Deadline(60))
        self.get = mock.Mock()

    def test_wait_for_active(self):
        active = _listener('ACTIVE')
        self.get.side_effect = [_listener('PENDING_CREATE'),
                                _listener('PENDING_CREATE'), active]

        self.assertIs(active, self.waiter.wait_for_active(
            'listener l', self.get, 'listener-id'))
        self.get.assert_called_with('listener-id')
        self.assertEqual(2, len(self.clock.slept))

    def test_wait_for_active_immediately(self):
        self.get.return_value = _listener('ACTIVE')

        self.waiter.wait_for_active('listener l', self.get, 'listener-id')

        self.assertEqual([], self.clock.slept)
        self.get.assert_called_once_with('listener-id')

    def test_wait_for_active_error(self):
        self.get.return_value = _listener('ERROR')

        ex = self.assertRaises(lb_exc.ProvisioningError,
                               self.waiter.wait_for_active, 'listener l',
                               self.get, 'listener-id')
        self.assertEqual('ERROR', ex.status)
        self.assertIn('listener l', str(ex))

    def test_wait_for_active_gone(self):
        self.get.side_effect = os_exc.NotFoundException()

        ex = self.assertRaises(lb_exc.ProvisioningError,
                               self.waiter.wait_for_active, 'listener l',
                               self.get, 'listener-id')
        self.assertEqual('DELETED', ex.status)

    def test_wait_for_active_timeout(self):
        self.get.return_value = _listener('PENDING_UPDATE')

        ex = self.assertRaises(lb_exc.ProvisioningTimeoutError,
                               self.waiter.wait_for_active, 'listener l',
                               self.get, 'listener-id')
        self.assertEqual('PENDING_UPDATE', ex.status)
        self.assertAlmostEqual(60, self.clock.elapsed)
        for interval in self.clock.slept:
            self.assertLessEqual(interval, waiter.MAX_POLL_INTERVAL)

    def test_wait_for_active_transient_read(self):
        self.get.side_effect = [os_exc.HttpException(http_status=503),
                                _listener('ACTIVE')]

        self.waiter.wait_for_active('listener l', self.get, 'listener-id')

        self.assertEqual(2, self.get.call_count)

    def test_wait_for_active_fatal_read(self):
        self.get.side_effect = os_exc.HttpException(http_status=403)

        self.assertRaises(lb_exc.ValidationError,
                          self.waiter.wait_for_active, 'listener l',
                          self.get, 'listener-id')

    def test_wait_for_active_cancelled(self):
        self.get.return_value = _listener('PENDING_CREATE')
        deadline = self.waiter.deadline

        def _cancel(seconds):
            deadline.cancel()
            return True

        with mock.patch.object(deadline, '_pause', side_effect=_cancel):
            self.assertRaises(lb_exc.ProvisioningTimeoutError,
                              self.waiter.wait_for_active, 'listener l',
                              self.get, 'listener-id')
        self.assertEqual(1, self.get.call_count)

    def test_wait_for_deletion(self):
        self.get.side_effect = [_listener('PENDING_DELETE'),
                                os_exc.NotFoundException()]

        self.waiter.wait_for_deletion('listener l', self.get, 'listener-id')

        self.assertEqual(2, self.get.call_count)

    def test_wait_for_deletion_deleted_status(self):
        self.get.return_value = _listener('DELETED')

        self.waiter.wait_for_deletion('listener l', self.get, 'listener-id')

    def test_wait_for_deletion_error(self):
        self.get.return_value = _listener('ERROR')

        ex = self.assertRaises(lb_exc.ProvisioningError,
                               self.waiter.wait_for_deletion, 'listener l',
                               self.get, 'listener-id')
        self.assertEqual('delete', ex.operation)
