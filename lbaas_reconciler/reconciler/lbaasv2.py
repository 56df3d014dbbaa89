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

import functools

from keystoneauth1 import exceptions as ks_exc
from openstack import exceptions as os_exc
from oslo_config import cfg
from oslo_log import log as logging

from lbaas_reconciler import clients
from lbaas_reconciler import constants as lb_const
from lbaas_reconciler import exceptions as lb_exc
from lbaas_reconciler.reconciler import waiter
from lbaas_reconciler import utils

CONF = cfg.CONF
LOG = logging.getLogger(__name__)

_PROVIDER_ERRORS = (os_exc.SDKException, ks_exc.ClientException)


def describe(kind, name):
    return '%s %s' % (kind, name)


class LBaaSv2Driver(object):
    """Single Octavia mutations, made safe to repeat.

    Every create/update/delete first waits for the parent load balancer to
    be ACTIVE, retries transient failures within the shared deadline and,
    for creates and updates, waits for the resource itself to become ACTIVE
    again. A create rejected with a conflict adopts the resource that
    already has the same identity.
    """

    def __init__(self, deadline):
        self._deadline = deadline
        self._waiter = waiter.ProvisioningWaiter(deadline)

    @property
    def deadline(self):
        return self._deadline

    def add_tags(self, request):
        if CONF.loadbalancer.resource_tags:
            request['tags'] = list(CONF.loadbalancer.resource_tags)

    def _backoff(self, resource, operation, ex, attempt):
        if attempt > CONF.loadbalancer.max_retries:
            raise lb_exc.TransientAPIError(lb_exc.format_msg(ex),
                                           resource, operation,
                                           attempts=attempt)
        backoff = utils.exponential_backoff(attempt)
        LOG.debug("Transient error on %(op)s of %(res)s: %(err)s. "
                  "Retrying in %(backoff)ss",
                  {'op': operation, 'res': resource,
                   'err': lb_exc.format_msg(ex), 'backoff': backoff})
        self._deadline.sleep(backoff, resource)

    def _retry(self, resource, operation, method, *args, **kwargs):
        attempt = 0
        while True:
            try:
                LOG.debug("Calling %(op)s on %(res)s",
                          {'op': operation, 'res': resource})
                return method(*args, **kwargs)
            except _PROVIDER_ERRORS as ex:
                if not utils.is_transient_error(ex):
                    raise
                attempt += 1
                self._backoff(resource, operation, ex, attempt)

    def _create(self, resource, create, find):
        """Creates a resource, retrying transient errors.

        A create that timed out or lost its connection may still have been
        applied by the provider, so before every new attempt the resource
        is looked up by identity and adopted when it exists.
        """
        attempt = 0
        while True:
            if attempt:
                found = self._retry(resource, 'find', find)
                if found is not None:
                    LOG.info("Adopted %s created by a previous attempt",
                             resource)
                    return found
            try:
                LOG.debug("Calling create on %s", resource)
                result = create()
            except _PROVIDER_ERRORS as ex:
                if not utils.is_transient_error(ex):
                    raise
                attempt += 1
                self._backoff(resource, 'create', ex, attempt)
                continue
            LOG.info("Created %s", resource)
            return result

    def call(self, resource, operation, method, *args, **kwargs):
        """Calls the provider, retrying transient errors.

        :raises TransientAPIError: retries are exhausted
        :raises ValidationError: the provider refused the request
        :raises ResourceConflictError: the provider reported a conflict
        """
        try:
            return self._retry(resource, operation, method, *args, **kwargs)
        except _PROVIDER_ERRORS as ex:
            raise utils.translate_provider_error(ex, resource, operation)

    def get(self, resource, get, resource_id):
        """Reads a resource by ID, None when it does not exist."""
        try:
            return self._retry(resource, 'get', get, resource_id)
        except os_exc.NotFoundException:
            return None
        except _PROVIDER_ERRORS as ex:
            raise utils.translate_provider_error(ex, resource, 'get')

    def wait_for_loadbalancer(self, loadbalancer):
        lbaas = clients.get_loadbalancer_client()
        return self._waiter.wait_for_active(
            describe(lb_const.RESOURCE_LOADBALANCER, loadbalancer.name),
            lbaas.get_load_balancer, loadbalancer.id,
            interval=waiter.POLL_SLOW_INTERVAL)

    def _ensure(self, loadbalancer, resource, create, find, get,
                interval=waiter.POLL_FAST_INTERVAL):
        if loadbalancer is not None:
            self.wait_for_loadbalancer(loadbalancer)
        try:
            result = self._create(resource, create, find)
        except os_exc.ConflictException:
            result = self.call(resource, 'find', find)
            if result is None:
                raise lb_exc.ResourceConflictError(
                    'provider reported a conflict but no resource with the '
                    'same identity was found', resource, 'create')
            LOG.info("Adopted existing %s", resource)
        except _PROVIDER_ERRORS as ex:
            raise utils.translate_provider_error(ex, resource, 'create')
        return self._waiter.wait_for_active(resource, get, result.id,
                                            interval)

    def _release(self, loadbalancer, resource, delete, *args, **kwargs):
        if loadbalancer is not None:
            self.wait_for_loadbalancer(loadbalancer)
        try:
            self._retry(resource, 'delete', delete, *args,
                        ignore_missing=True, **kwargs)
        except os_exc.NotFoundException:
            LOG.debug("%s is already gone", resource)
            return
        except _PROVIDER_ERRORS as ex:
            raise utils.translate_provider_error(ex, resource, 'delete')
        LOG.info("Deleted %s", resource)

    def create_loadbalancer(self, name):
        lbaas = clients.get_loadbalancer_client()
        request = {'name': name}
        if CONF.loadbalancer.network_id:
            request['vip_network_id'] = CONF.loadbalancer.network_id
        else:
            request['vip_subnet_id'] = CONF.loadbalancer.subnet_id
        if CONF.loadbalancer.lb_provider:
            request['provider'] = CONF.loadbalancer.lb_provider
        self.add_tags(request)

        return self._ensure(
            None, describe(lb_const.RESOURCE_LOADBALANCER, name),
            functools.partial(lbaas.create_load_balancer, **request),
            functools.partial(self.find_loadbalancer, name),
            lbaas.get_load_balancer,
            interval=waiter.POLL_SLOW_INTERVAL)

    def find_loadbalancer(self, name):
        """Returns the load balancer called `name`, None if there is none.

        Identity is the exact name. A load balancer without the configured
        tags is still returned.

        :raises ResourceConflictError: several load balancers share the name
        """
        lbaas = clients.get_loadbalancer_client()
        found = [lb for lb in lbaas.load_balancers(name=name)
                 if lb.name == name]
        if not found:
            return None
        if len(found) > 1:
            raise lb_exc.ResourceConflictError(
                '%d load balancers share this name: %s'
                % (len(found), ', '.join(lb.id for lb in found)),
                describe(lb_const.RESOURCE_LOADBALANCER, name), 'locate')

        loadbalancer = found[0]
        tags = CONF.loadbalancer.resource_tags
        if tags and not set(tags).issubset(loadbalancer.tags or []):
            LOG.warning("Load balancer %(name)s (%(id)s) does not carry the "
                        "configured tags %(tags)s, adopting it anyway",
                        {'name': name, 'id': loadbalancer.id, 'tags': tags})
        return loadbalancer

    def release_loadbalancer(self, loadbalancer):
        """Deletes a load balancer with everything under it.

        The load balancer is not awaited ACTIVE first, this is how load
        balancers stuck in ERROR are removed.
        """
        lbaas = clients.get_loadbalancer_client()
        resource = describe(lb_const.RESOURCE_LOADBALANCER, loadbalancer.name)
        self._release(None, resource, lbaas.delete_load_balancer,
                      loadbalancer.id, cascade=True)
        self._waiter.wait_for_deletion(resource, lbaas.get_load_balancer,
                                       loadbalancer.id,
                                       interval=waiter.POLL_SLOW_INTERVAL)

    def create_listener(self, loadbalancer, desired):
        lbaas = clients.get_loadbalancer_client()
        request = {
            'name': desired.name,
            'loadbalancer_id': loadbalancer.id,
            'protocol': desired.protocol,
            'protocol_port': desired.port,
        }
        self.add_tags(request)

        return self._ensure(
            loadbalancer, describe(lb_const.RESOURCE_LISTENER, desired.name),
            functools.partial(lbaas.create_listener, **request),
            functools.partial(self._find_listener, loadbalancer, desired),
            lbaas.get_listener)

    def _find_listener(self, loadbalancer, desired):
        lbaas = clients.get_loadbalancer_client()
        for listener in lbaas.listeners(load_balancer_id=loadbalancer.id,
                                        protocol=desired.protocol,
                                        protocol_port=desired.port):
            return listener
        return None

    def release_listener(self, loadbalancer, listener):
        lbaas = clients.get_loadbalancer_client()
        self._release(loadbalancer,
                      describe(lb_const.RESOURCE_LISTENER, listener.name),
                      lbaas.delete_listener, listener.id)

    def _get_pool_request(self, desired):
        persistence = None
        if desired.session_persistence:
            persistence = {'type': desired.session_persistence}
        return {'lb_algorithm': desired.lb_algorithm,
                'session_persistence': persistence}

    def create_pool(self, loadbalancer, listener, desired):
        lbaas = clients.get_loadbalancer_client()
        request = self._get_pool_request(desired)
        if request['session_persistence'] is None:
            del request['session_persistence']
        request.update({
            'name': desired.name,
            'listener_id': listener.id,
            'protocol': desired.protocol,
        })
        self.add_tags(request)

        return self._ensure(
            loadbalancer, describe(lb_const.RESOURCE_POOL, desired.name),
            functools.partial(lbaas.create_pool, **request),
            functools.partial(self._find_pool, listener),
            lbaas.get_pool)

    def _find_pool(self, listener):
        lbaas = clients.get_loadbalancer_client()
        pool_id = lbaas.get_listener(listener.id).default_pool_id
        if not pool_id:
            return None
        return lbaas.get_pool(pool_id)

    def update_pool(self, loadbalancer, pool, desired):
        lbaas = clients.get_loadbalancer_client()
        resource = describe(lb_const.RESOURCE_POOL, desired.name)
        self.wait_for_loadbalancer(loadbalancer)
        self.call(resource, 'update', lbaas.update_pool, pool.id,
                  **self._get_pool_request(desired))
        LOG.info("Updated %s", resource)
        return self._waiter.wait_for_active(resource, lbaas.get_pool, pool.id)

    def release_pool(self, loadbalancer, pool):
        lbaas = clients.get_loadbalancer_client()
        self._release(loadbalancer,
                      describe(lb_const.RESOURCE_POOL, pool.name),
                      lbaas.delete_pool, pool.id)

    def create_monitor(self, loadbalancer, pool, desired):
        lbaas = clients.get_loadbalancer_client()
        request = {
            'name': desired.name,
            'pool_id': pool.id,
            'type': lb_const.MONITOR_TYPES[desired.protocol],
            'delay': CONF.loadbalancer.monitor_delay,
            'timeout': CONF.loadbalancer.monitor_timeout,
            'max_retries': CONF.loadbalancer.monitor_max_retries,
        }
        self.add_tags(request)

        return self._ensure(
            loadbalancer, describe(lb_const.RESOURCE_MONITOR, desired.name),
            functools.partial(lbaas.create_health_monitor, **request),
            functools.partial(self._find_monitor, pool),
            lbaas.get_health_monitor)

    def _find_monitor(self, pool):
        lbaas = clients.get_loadbalancer_client()
        monitor_id = lbaas.get_pool(pool.id).health_monitor_id
        if not monitor_id:
            return None
        return lbaas.get_health_monitor(monitor_id)

    def release_monitor(self, loadbalancer, monitor):
        lbaas = clients.get_loadbalancer_client()
        self._release(loadbalancer,
                      describe(lb_const.RESOURCE_MONITOR, monitor.name),
                      lbaas.delete_health_monitor, monitor.id)

    def create_member(self, loadbalancer, pool, desired):
        lbaas = clients.get_loadbalancer_client()
        request = {
            'name': desired.name,
            'address': desired.address,
            'protocol_port': desired.port,
            'subnet_id': CONF.loadbalancer.subnet_id,
            'weight': desired.weight,
        }
        self.add_tags(request)

        return self._ensure(
            loadbalancer, describe(lb_const.RESOURCE_MEMBER, desired.name),
            functools.partial(lbaas.create_member, pool.id, **request),
            functools.partial(self._find_member, pool, desired),
            functools.partial(lbaas.get_member, pool=pool.id))

    def _find_member(self, pool, desired):
        lbaas = clients.get_loadbalancer_client()
        for member in lbaas.members(pool.id, address=desired.address,
                                    protocol_port=desired.port):
            return member
        return None

    def release_member(self, loadbalancer, pool, member):
        lbaas = clients.get_loadbalancer_client()
        self._release(loadbalancer,
                      describe(lb_const.RESOURCE_MEMBER, member.name),
                      lbaas.delete_member, member.id, pool.id)
