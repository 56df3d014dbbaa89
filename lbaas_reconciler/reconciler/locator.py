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

from oslo_log import log as logging

from lbaas_reconciler import clients
from lbaas_reconciler import constants as lb_const
from lbaas_reconciler import exceptions as lb_exc
from lbaas_reconciler.reconciler import lbaasv2

LOG = logging.getLogger(__name__)


def _list(generator):
    # NOTE: openstacksdk listings are lazy, consuming them inside the
    # retried call makes errors on later pages retried as well.
    return list(generator)


class ResourceLocator(object):
    """Reads back the provider state of a load balancer.

    Nothing is cached between invocations; the provider is the only source
    of truth and every reconciliation starts from a fresh read.
    """

    def __init__(self, driver, pub_ip_driver):
        self._driver = driver
        self._pub_ip = pub_ip_driver

    def _call(self, resource, method, *args, **kwargs):
        return self._driver.call(resource, 'list',
                                 lambda: _list(method(*args, **kwargs)))

    def find_loadbalancer(self, name):
        resource = lbaasv2.describe(lb_const.RESOURCE_LOADBALANCER, name)
        return self._driver.call(resource, 'list',
                                 self._driver.find_loadbalancer, name)

    def _get_members(self, pool):
        lbaas = clients.get_loadbalancer_client()
        members = {}
        for member in self._call(
                lbaasv2.describe(lb_const.RESOURCE_POOL, pool.name),
                lbaas.members, pool.id):
            key = (member.address, member.protocol_port)
            if key in members:
                LOG.warning("Pool %(pool)s has several members for "
                            "%(addr)s:%(port)s, ignoring %(id)s",
                            {'pool': pool.name, 'addr': key[0],
                             'port': key[1], 'id': member.id})
                continue
            members[key] = member
        return members

    def _get_listener_tree(self, listener):
        lbaas = clients.get_loadbalancer_client()
        tree = {'listener': listener, 'pool': None, 'monitor': None,
                'members': {}}
        if not listener.default_pool_id:
            return tree

        pool = self._driver.get(
            lbaasv2.describe(lb_const.RESOURCE_POOL, listener.name),
            lbaas.get_pool, listener.default_pool_id)
        if pool is None:
            return tree
        tree['pool'] = pool
        tree['members'] = self._get_members(pool)
        if pool.health_monitor_id:
            tree['monitor'] = self._driver.get(
                lbaasv2.describe(lb_const.RESOURCE_MONITOR, pool.name),
                lbaas.get_health_monitor, pool.health_monitor_id)
        return tree

    def get_current_state(self, name):
        """Returns the provider state of the load balancer called `name`.

        :returns: None when there is no such load balancer, otherwise a dict
                  with 'loadbalancer', 'listeners' keyed by (protocol, port)
                  and 'floating_ip' (`LBaaSPubIp` or None) keys
        :raises ResourceConflictError: identity matches several resources
        """
        loadbalancer = self.find_loadbalancer(name)
        if loadbalancer is None:
            LOG.debug("No load balancer named %s", name)
            return None

        lbaas = clients.get_loadbalancer_client()
        resource = lbaasv2.describe(lb_const.RESOURCE_LOADBALANCER, name)
        listeners = {}
        for listener in self._call(resource, lbaas.listeners,
                                   load_balancer_id=loadbalancer.id):
            key = (listener.protocol, listener.protocol_port)
            if key in listeners:
                raise lb_exc.ResourceConflictError(
                    'listeners %s and %s both serve %s/%s'
                    % ((listeners[key]['listener'].id, listener.id) + key),
                    resource, 'locate')
            listeners[key] = self._get_listener_tree(listener)

        floating_ip = None
        if loadbalancer.vip_port_id:
            floating_ip = self._driver.call(
                lbaasv2.describe(lb_const.RESOURCE_FLOATING_IP,
                                 loadbalancer.vip_port_id),
                'list', self._pub_ip.get_pub_ip_info,
                loadbalancer.vip_port_id)

        return {'loadbalancer': loadbalancer,
                'listeners': listeners,
                'floating_ip': floating_ip}
