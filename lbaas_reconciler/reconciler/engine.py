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

from oslo_concurrency import lockutils
from oslo_log import log as logging

from lbaas_reconciler import constants as lb_const
from lbaas_reconciler import exceptions as lb_exc
from lbaas_reconciler.reconciler import address
from lbaas_reconciler.reconciler import base
from lbaas_reconciler.reconciler import builder
from lbaas_reconciler.reconciler import lbaasv2
from lbaas_reconciler.reconciler import locator
from lbaas_reconciler.reconciler import waiter
from lbaas_reconciler import utils

LOG = logging.getLogger(__name__)


def _is_error(resource):
    return resource.provisioning_status == lb_const.PROVISIONING_ERROR


def _pool_drifted(pool, desired):
    persistence = (pool.session_persistence or {}).get('type')
    return (pool.lb_algorithm != desired.lb_algorithm or
            persistence != desired.session_persistence)


def _empty_listeners(desired):
    return [listener.name for listener in desired.listeners
            if not listener.members]


class Reconciler(object):
    """Converges an Octavia load balancer to what a service needs.

    The reconciler holds no state between calls: the load balancer is found
    by its name and read back from Octavia every time, so calling it again
    after a failure (or with the same input) continues where the previous
    call stopped instead of duplicating resources.

    Calls for the same load balancer are serialized with a process-wide
    lock named after it; calls for different services run independently.
    """

    def __init__(self, pub_ip_driver=None):
        if pub_ip_driver is None:
            pub_ip_driver = base.ServicePubIpDriver.get_instance()
        self._pub_ip = pub_ip_driver

    def get_loadbalancer_name(self, namespace, name):
        return utils.get_loadbalancer_name(namespace, name)

    def _locate(self, name, deadline):
        driver = lbaasv2.LBaaSv2Driver(deadline)
        current = locator.ResourceLocator(
            driver, self._pub_ip).get_current_state(name)
        return driver, current

    def get_loadbalancer(self, namespace, name):
        """Reports the status of a service load balancer without changes.

        :returns: tuple of `LBaaSStatus` (None if missing) and a boolean
                  telling whether the load balancer exists
        """
        lb_name = self.get_loadbalancer_name(namespace, name)
        _, current = self._locate(lb_name, waiter.Deadline())
        if current is None:
            return None, False

        empty = [entry['listener'].name
                 for entry in current['listeners'].values()
                 if not entry['members']]
        return address.build_status(current['loadbalancer'],
                                    current['floating_ip'], empty), True

    def ensure_loadbalancer(self, service_spec, nodes, deadline=None):
        """Creates or updates the load balancer of a service.

        :param service_spec: `LBaaSServiceSpec`
        :param nodes: list of `LBaaSNode`
        :param deadline: `Deadline` bounding the whole call, a new one of
                         `[loadbalancer]activation_timeout` by default
        :returns: `LBaaSStatus`
        :raises LBaaSReconcilerException: any fatal condition, the partial
                                          state is left in place
        """
        desired = builder.build_desired_state(service_spec, nodes)
        builder.validate_config(desired.external)
        if deadline is None:
            deadline = waiter.Deadline()

        with lockutils.lock(desired.name):
            LOG.debug("Ensuring load balancer %s", desired.name)
            return self._ensure_loadbalancer(desired, deadline)

    def _ensure_loadbalancer(self, desired, deadline):
        driver, current = self._locate(desired.name, deadline)

        if current is not None and _is_error(current['loadbalancer']):
            LOG.warning("Load balancer %s is in ERROR status, deleting it to "
                        "create it again", desired.name)
            driver.release_loadbalancer(current['loadbalancer'])
            current = None

        if current is None:
            loadbalancer = driver.create_loadbalancer(desired.name)
            current_listeners = {}
            pub_ip = None
        else:
            loadbalancer = current['loadbalancer']
            current_listeners = current['listeners']
            pub_ip = current['floating_ip']

        wanted = set()
        for listener in desired.listeners:
            key = (listener.protocol, listener.port)
            wanted.add(key)
            entry = current_listeners.get(key)
            if entry is not None and _is_error(entry['listener']):
                LOG.warning("Listener %s is in ERROR status, replacing it",
                            entry['listener'].name)
                self._release_listener_chain(driver, loadbalancer, entry)
                entry = None
            if entry is None:
                self._create_listener_chain(driver, loadbalancer, listener)
            else:
                self._sync_listener(driver, loadbalancer, entry, listener)

        for key, entry in current_listeners.items():
            if key not in wanted:
                LOG.info("Removing listener %s, its port is no longer "
                         "exposed", entry['listener'].name)
                self._release_listener_chain(driver, loadbalancer, entry)

        if desired.external and pub_ip is None:
            pub_ip = self._ensure_pub_ip(driver, loadbalancer, desired)

        loadbalancer = driver.wait_for_loadbalancer(loadbalancer)
        status = address.build_status(loadbalancer, pub_ip,
                                      _empty_listeners(desired))
        LOG.info("Load balancer %(lb)s is %(status)s at %(ingress)s",
                 {'lb': desired.name,
                  'status': status.provisioning_status,
                  'ingress': ', '.join(status.ingress)})
        return status

    def update_loadbalancer(self, service_spec, nodes, deadline=None):
        """Updates the members of an existing load balancer.

        Only the pools membership is converged, listeners are neither
        created nor removed.

        :raises ValidationError: the load balancer or one of its listeners
                                 does not exist, `ensure_loadbalancer` has
                                 to be used instead
        """
        desired = builder.build_desired_state(service_spec, nodes)
        builder.validate_config(desired.external)
        if deadline is None:
            deadline = waiter.Deadline()

        with lockutils.lock(desired.name):
            driver, current = self._locate(desired.name, deadline)
            if current is None:
                raise lb_exc.ValidationError(
                    'load balancer does not exist',
                    lbaasv2.describe(lb_const.RESOURCE_LOADBALANCER,
                                     desired.name), 'update')

            loadbalancer = current['loadbalancer']
            for listener in desired.listeners:
                entry = current['listeners'].get((listener.protocol,
                                                  listener.port))
                if entry is None or entry['pool'] is None:
                    raise lb_exc.ValidationError(
                        'listener or its pool does not exist',
                        lbaasv2.describe(lb_const.RESOURCE_LISTENER,
                                         listener.name), 'update')
                self._sync_members(driver, loadbalancer, entry['pool'],
                                   entry['members'], listener)

            loadbalancer = driver.wait_for_loadbalancer(loadbalancer)
            return address.build_status(loadbalancer, current['floating_ip'],
                                        _empty_listeners(desired))

    def _create_listener_chain(self, driver, loadbalancer, desired):
        listener = driver.create_listener(loadbalancer, desired)
        self._create_pool_chain(driver, loadbalancer, listener, desired)

    def _create_pool_chain(self, driver, loadbalancer, listener, desired):
        pool = driver.create_pool(loadbalancer, listener, desired)
        if desired.monitor:
            driver.create_monitor(loadbalancer, pool, desired)
        for member in desired.members:
            driver.create_member(loadbalancer, pool, member)

    def _sync_listener(self, driver, loadbalancer, entry, desired):
        listener = entry['listener']
        pool = entry['pool']
        if pool is not None and _is_error(pool):
            LOG.warning("Pool %s is in ERROR status, replacing it",
                        pool.name)
            self._release_pool_chain(driver, loadbalancer, entry)
            pool = None
        if pool is None:
            self._create_pool_chain(driver, loadbalancer, listener, desired)
            return

        monitor = entry['monitor']
        if monitor is not None and (not desired.monitor or
                                    _is_error(monitor)):
            driver.release_monitor(loadbalancer, monitor)
            monitor = None
        if monitor is None and desired.monitor:
            driver.create_monitor(loadbalancer, pool, desired)

        if _pool_drifted(pool, desired):
            pool = driver.update_pool(loadbalancer, pool, desired)

        self._sync_members(driver, loadbalancer, pool, entry['members'],
                           desired)

    def _sync_members(self, driver, loadbalancer, pool, current, desired):
        wanted = dict(((member.address, member.port), member)
                      for member in desired.members)
        current = dict(current)

        for key, member in list(current.items()):
            if _is_error(member):
                LOG.warning("Member %s is in ERROR status, replacing it",
                            member.name)
                driver.release_member(loadbalancer, pool, member)
                del current[key]

        for key, member in wanted.items():
            if key not in current:
                driver.create_member(loadbalancer, pool, member)

        for key, member in current.items():
            if key not in wanted:
                driver.release_member(loadbalancer, pool, member)

    def _release_pool_chain(self, driver, loadbalancer, entry):
        pool = entry['pool']
        if pool is None:
            return
        for member in entry['members'].values():
            driver.release_member(loadbalancer, pool, member)
        if entry['monitor'] is not None:
            driver.release_monitor(loadbalancer, entry['monitor'])
        driver.release_pool(loadbalancer, pool)

    def _release_listener_chain(self, driver, loadbalancer, entry):
        self._release_pool_chain(driver, loadbalancer, entry)
        driver.release_listener(loadbalancer, entry['listener'])

    def _ensure_pub_ip(self, driver, loadbalancer, desired):
        resource = lbaasv2.describe(lb_const.RESOURCE_FLOATING_IP,
                                    desired.name)
        description = '%s %s' % (lb_const.FIP_DESCRIPTION_PREFIX,
                                 desired.name)
        pub_ip = driver.call(resource, 'allocate',
                             self._pub_ip.acquire_service_pub_ip_info,
                             desired.lb_ip, loadbalancer.project_id,
                             loadbalancer.vip_port_id, description)
        driver.call(resource, 'associate', self._pub_ip.associate_pub_ip,
                    pub_ip, loadbalancer.vip_port_id)
        LOG.info("Floating IP %(ip)s associated to load balancer %(lb)s",
                 {'ip': pub_ip.ip_addr, 'lb': desired.name})
        return pub_ip
