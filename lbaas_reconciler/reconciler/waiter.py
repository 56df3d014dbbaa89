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

import random
import threading

from keystoneauth1 import exceptions as ks_exc
from openstack import exceptions as os_exc
from oslo_config import cfg
from oslo_log import log as logging
from oslo_utils import timeutils

from lbaas_reconciler import constants as lb_const
from lbaas_reconciler import exceptions as lb_exc
from lbaas_reconciler import utils

CONF = cfg.CONF
LOG = logging.getLogger(__name__)

# NOTE: Octavia usually applies listener, pool and member operations within
# a few seconds, while creating the load balancer itself (booting amphorae)
# takes minutes. The first one is polled with the 'fast' interval, the
# second with the 'slow' one.
POLL_FAST_INTERVAL = 1
POLL_SLOW_INTERVAL = 3
MAX_POLL_INTERVAL = 15

_GONE = (lb_const.PROVISIONING_DELETED,)


class Deadline(object):
    """Wall-clock budget shared by every wait of a single reconciliation.

    The budget is not reset between resources, so a slow chain of dependent
    creates can't exceed what the caller granted. `cancel` can be called
    from another thread; it wakes up a sleeping poller, which then raises
    `ProvisioningTimeoutError`.
    """

    def __init__(self, timeout=None):
        if timeout is None:
            timeout = CONF.loadbalancer.activation_timeout
        self.timeout = timeout
        self._cancelled = threading.Event()
        self._watch = timeutils.StopWatch(duration=timeout)
        self._watch.start()

    def remaining(self):
        if self._cancelled.is_set():
            return 0
        return max(self._watch.leftover(), 0)

    def expired(self):
        return self._cancelled.is_set() or self._watch.leftover() <= 0

    @property
    def cancelled(self):
        return self._cancelled.is_set()

    def cancel(self):
        self._cancelled.set()

    def check(self, resource=None, status=None):
        if self.expired():
            raise lb_exc.ProvisioningTimeoutError(resource, status,
                                                  self.timeout)

    def _pause(self, seconds):
        # Returns True when woken up by cancel()
        return self._cancelled.wait(seconds)

    def sleep(self, seconds, resource=None, status=None):
        """Sleeps at most `seconds`, never past the deadline.

        :returns: the time actually slept
        """
        self.check(resource, status)
        seconds = min(seconds, self.remaining())
        if seconds > 0:
            self._pause(seconds)
        self.check(resource, status)
        return seconds


def next_interval(interval):
    interval = interval * 2 * random.gauss(0.8, 0.05)
    return min(interval, MAX_POLL_INTERVAL)


class ProvisioningWaiter(object):
    """Polls Octavia until a resource settles.

    Every poll is a single status read. Intervals start at `interval` and
    grow exponentially (with jitter) up to `MAX_POLL_INTERVAL`.
    """

    def __init__(self, deadline):
        self._deadline = deadline

    @property
    def deadline(self):
        return self._deadline

    def _read(self, resource, get, resource_id):
        try:
            return get(resource_id)
        except os_exc.NotFoundException:
            raise
        except (os_exc.SDKException, ks_exc.ClientException) as ex:
            if not utils.is_transient_error(ex):
                raise utils.translate_provider_error(ex, resource, 'get')
            LOG.debug("Transient error reading %(res)s: %(err)s",
                      {'res': resource, 'err': lb_exc.format_msg(ex)})
            return None

    def wait_for_active(self, resource, get, resource_id,
                        interval=POLL_FAST_INTERVAL):
        """Waits for `resource` to reach ACTIVE provisioning status.

        :param resource: human readable resource description for errors
        :param get: callable reading the resource by id
        :param resource_id: ID of the resource
        :param interval: initial poll interval
        :returns: the last read of the resource (ACTIVE)
        :raises ProvisioningError: resource went to ERROR or disappeared
        :raises ProvisioningTimeoutError: the deadline passed
        """
        status = None
        while True:
            self._deadline.check(resource, status)
            try:
                obj = self._read(resource, get, resource_id)
            except os_exc.NotFoundException:
                raise lb_exc.ProvisioningError(
                    resource, lb_const.PROVISIONING_DELETED)
            if obj is not None:
                status = obj.provisioning_status
                if status == lb_const.PROVISIONING_ACTIVE:
                    LOG.debug("Provisioning complete for %s", resource)
                    return obj
                if status == lb_const.PROVISIONING_ERROR or status in _GONE:
                    raise lb_exc.ProvisioningError(resource, status)
                LOG.debug("Provisioning status %(status)s for %(res)s, "
                          "%(rem).3gs remaining until timeout",
                          {'status': status, 'res': resource,
                           'rem': self._deadline.remaining()})
            self._deadline.sleep(interval, resource, status)
            interval = next_interval(interval)

    def wait_for_deletion(self, resource, get, resource_id,
                          interval=POLL_FAST_INTERVAL):
        status = lb_const.PROVISIONING_PENDING_DELETE
        while True:
            self._deadline.check(resource, status)
            try:
                obj = self._read(resource, get, resource_id)
            except os_exc.NotFoundException:
                LOG.debug("%s is gone", resource)
                return
            if obj is not None:
                status = obj.provisioning_status
                if status in _GONE:
                    return
                if status == lb_const.PROVISIONING_ERROR:
                    raise lb_exc.ProvisioningError(resource, status,
                                                   operation='delete')
            self._deadline.sleep(interval, resource, status)
            interval = next_interval(interval)
