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

import collections
import itertools

from openstack import exceptions as os_exc
from openstack.load_balancer.v2 import health_monitor as o_hm
from openstack.load_balancer.v2 import listener as o_lis
from openstack.load_balancer.v2 import load_balancer as o_lb
from openstack.load_balancer.v2 import member as o_mem
from openstack.load_balancer.v2 import pool as o_pool
from openstack.network.v2 import floating_ip as os_fip

from lbaas_reconciler import constants as lb_const
from lbaas_reconciler.objects import lbaas as obj_lbaas

LB = 'loadbalancer'
LISTENER = 'listener'
POOL = 'pool'
MONITOR = 'healthmonitor'
MEMBER = 'member'

_CLASSES = {
    LB: o_lb.LoadBalancer,
    LISTENER: o_lis.Listener,
    POOL: o_pool.Pool,
    MONITOR: o_hm.HealthMonitor,
    MEMBER: o_mem.Member,
}

_PARENT_KEY = {
    LISTENER: 'load_balancer_id',
    POOL: 'listener_id',
    MONITOR: 'pool_id',
    MEMBER: 'pool_id',
}


def get_service(namespace='default', name='demo', ports=None,
                svc_type='LoadBalancer', lb_ip=None, affinity='None'):
    if ports is None:
        ports = [{'name': 'http', 'protocol': 'TCP', 'port': 80,
                  'targetPort': 8080, 'nodePort': 31111},
                 {'name': 'dns', 'protocol': 'UDP', 'port': 53,
                  'targetPort': 9053, 'nodePort': 32053}]
    service = {'metadata': {'namespace': namespace, 'name': name},
               'spec': {'type': svc_type, 'ports': ports,
                        'sessionAffinity': affinity}}
    if lb_ip:
        service['spec']['loadBalancerIP'] = lb_ip
    return service


def get_node(name='node-1', address='10.250.240.1', ready=True):
    addresses = [{'type': 'Hostname', 'address': name}]
    if address:
        addresses.append({'type': 'InternalIP', 'address': address})
    return {'metadata': {'name': name},
            'status': {'addresses': addresses,
                       'conditions': [{'type': 'Ready',
                                       'status': str(ready)}]}}


def get_service_spec(**kwargs):
    return obj_lbaas.LBaaSServiceSpec(
        namespace=kwargs.pop('namespace', 'default'),
        name=kwargs.pop('name', 'demo'),
        ports=kwargs.pop('ports', [
            obj_lbaas.LBaaSPortSpec(name='http', protocol='TCP', port=80,
                                    target_port='8080', node_port=31111),
            obj_lbaas.LBaaSPortSpec(name='dns', protocol='UDP', port=53,
                                    target_port='9053', node_port=32053)]),
        external=kwargs.pop('external', True),
        lb_ip=kwargs.pop('lb_ip', None),
        session_affinity=kwargs.pop('session_affinity', 'None'))


def get_lbaas_node(name='node-1', address='10.250.240.1', ready=True):
    return obj_lbaas.LBaaSNode(name=name, address=address, ready=ready)


class FakeOctavia(object):
    """In-memory Octavia reproducing its asynchronous provisioning.

    Creates, updates and deletes return immediately with a PENDING status
    and only take effect `delay` seconds later on the test clock. While a
    child is PENDING its load balancer is PENDING_UPDATE. Mutations issued
    against a load balancer or parent that is not ACTIVE are rejected with a
    conflict and recorded in `violations`, as are pool deletions while the
    pool still has members. When `network` is given, deleting a load
    balancer unbinds the floating IPs of its VIP port, as Neutron does.
    """

    def __init__(self, clock, delay=2, lb_delay=30, network=None):
        self.clock = clock
        self.network = network
        self.delay = delay
        self.lb_delay = lb_delay
        self.records = collections.OrderedDict()
        self.calls = []
        self.violations = []
        self.failures = collections.defaultdict(list)
        self.late_failures = collections.defaultdict(list)
        self._ids = itertools.count(1)

    # helpers

    def fail(self, method, *errors):
        """Makes the next calls of `method` raise `errors` in order."""
        self.failures[method].extend(errors)

    def fail_after(self, method, *errors):
        """Like `fail`, but the call takes effect before raising.

        This is a request applied by the provider whose response was lost.
        """
        self.late_failures[method].extend(errors)

    def _maybe_fail(self, method):
        if self.failures.get(method):
            raise self.failures[method].pop(0)

    def _maybe_fail_late(self, method):
        if self.late_failures.get(method):
            raise self.late_failures[method].pop(0)

    def _settle(self):
        now = self.clock.now()
        for rec_id, rec in list(self.records.items()):
            if rec['ready_at'] is None or now < rec['ready_at']:
                continue
            rec['ready_at'] = None
            if rec['target'] == lb_const.PROVISIONING_DELETED:
                del self.records[rec_id]
                if rec['kind'] == LB and self.network is not None:
                    self.network.unbind_port(rec['attrs'].get('vip_port_id'))
            else:
                rec['attrs']['provisioning_status'] = rec['target']
        for rec in self.records.values():
            if rec['kind'] != LB or rec['ready_at'] is not None:
                continue
            busy = any(child['ready_at'] is not None
                       for child in self._descendants(rec['attrs']['id']))
            rec['attrs']['provisioning_status'] = (
                lb_const.PROVISIONING_PENDING_UPDATE if busy
                else rec.get('final', lb_const.PROVISIONING_ACTIVE))

    def _descendants(self, lb_id):
        result = []
        parents = {lb_id}
        for rec in self.records.values():
            if rec['kind'] == LB:
                continue
            if rec['attrs'].get(_PARENT_KEY[rec['kind']]) in parents:
                result.append(rec)
                parents.add(rec['attrs']['id'])
        return result

    def _lb_of(self, rec):
        while rec['kind'] != LB:
            rec = self.records[rec['attrs'][_PARENT_KEY[rec['kind']]]]
        return rec

    def _view(self, rec):
        return _CLASSES[rec['kind']](**rec['attrs'])

    def _get(self, kind, res_id):
        self._settle()
        rec = self.records.get(res_id)
        if rec is None or rec['kind'] != kind:
            raise os_exc.NotFoundException('%s %s not found' % (kind, res_id))
        return rec

    def _check_mutable(self, method, rec):
        status = rec['attrs']['provisioning_status']
        if status != lb_const.PROVISIONING_ACTIVE:
            self.violations.append((method, rec['kind'],
                                    rec['attrs'].get('name'), status))
            raise os_exc.ConflictException(
                '%s %s is immutable in status %s'
                % (rec['kind'], rec['attrs']['id'], status))

    def _list(self, kind, **query):
        self._settle()
        for rec in list(self.records.values()):
            if rec['kind'] != kind:
                continue
            attrs = rec['attrs']
            if all(attrs.get(k) == v for k, v in query.items()):
                yield self._view(rec)

    def _add(self, method, kind, attrs, parent=None):
        self._settle()
        self._maybe_fail(method)
        if parent is not None:
            self._check_mutable(method, self._lb_of(parent))
            self._check_mutable(method, parent)
        attrs = dict(attrs)
        attrs['id'] = '%s-%d' % (kind, next(self._ids))
        attrs['provisioning_status'] = lb_const.PROVISIONING_PENDING_CREATE
        attrs.setdefault('project_id', 'project-id')
        delay = self.lb_delay if kind == LB else self.delay
        rec = {'kind': kind, 'attrs': attrs,
               'ready_at': self.clock.now() + delay,
               'target': lb_const.PROVISIONING_ACTIVE}
        self.records[attrs['id']] = rec
        self.calls.append((method, kind, attrs.get('name')))
        self._settle()
        self._maybe_fail_late(method)
        return self._view(rec)

    def _remove(self, method, kind, res_id, ignore_missing=True):
        self._settle()
        self._maybe_fail(method)
        rec = self.records.get(res_id)
        if rec is None:
            if ignore_missing:
                return None
            raise os_exc.NotFoundException('%s %s not found' % (kind, res_id))
        if kind != LB:
            self._check_mutable(method, self._lb_of(rec))
        if kind == POOL and any(r['kind'] == MEMBER and
                                r['attrs']['pool_id'] == res_id
                                for r in self.records.values()):
            self.violations.append((method, kind, rec['attrs'].get('name'),
                                    'has members'))
        rec['attrs']['provisioning_status'] = (
            lb_const.PROVISIONING_PENDING_DELETE)
        rec['ready_at'] = self.clock.now() + self.delay
        rec['target'] = lb_const.PROVISIONING_DELETED
        self.calls.append((method, kind, rec['attrs'].get('name')))
        self._settle()

    def _unlink(self, rec):
        attrs = rec['attrs']
        if rec['kind'] == POOL:
            listener = self.records.get(attrs.get('listener_id'))
            if listener and listener['attrs'].get('default_pool_id') == (
                    attrs['id']):
                listener['attrs']['default_pool_id'] = None
        elif rec['kind'] == MONITOR:
            pool = self.records.get(attrs.get('pool_id'))
            if pool:
                pool['attrs']['health_monitor_id'] = None

    def count(self, method=None, kind=None):
        return len([c for c in self.calls
                    if (method is None or c[0] == method) and
                    (kind is None or c[1] == kind)])

    def mutations(self):
        return [c for c in self.calls if c[0].split('_')[0] in (
            'create', 'update', 'delete')]

    def all(self, kind):
        self._settle()
        return [self._view(rec) for rec in self.records.values()
                if rec['kind'] == kind]

    def set_status(self, res_id, status):
        rec = self.records[res_id]
        rec['ready_at'] = None
        rec['attrs']['provisioning_status'] = status
        if rec['kind'] == LB:
            rec['final'] = status

    # load balancers

    def create_load_balancer(self, **attrs):
        n = next(self._ids)
        attrs.setdefault('vip_address', '10.0.0.%d' % n)
        attrs.setdefault('vip_port_id', 'vip-port-%d' % n)
        return self._add('create_load_balancer', LB, attrs)

    def get_load_balancer(self, lb_id):
        return self._view(self._get(LB, lb_id))

    def load_balancers(self, **query):
        self.calls.append(('load_balancers', LB, query.get('name')))
        return self._list(LB, **query)

    def delete_load_balancer(self, lb_id, ignore_missing=True,
                             cascade=False):
        if cascade:
            self._settle()
            for child in self._descendants(lb_id):
                child['ready_at'] = self.clock.now() + self.lb_delay
                child['target'] = lb_const.PROVISIONING_DELETED
        self._remove('delete_load_balancer', LB, lb_id, ignore_missing)
        rec = self.records.get(lb_id)
        if rec is not None:
            rec.pop('final', None)
            rec['ready_at'] = self.clock.now() + self.lb_delay

    # listeners

    def create_listener(self, **attrs):
        attrs['load_balancer_id'] = attrs.pop('loadbalancer_id')
        for rec in self._list(LISTENER,
                              load_balancer_id=attrs['load_balancer_id'],
                              protocol_port=attrs['protocol_port']):
            if rec.protocol == attrs['protocol']:
                raise os_exc.ConflictException('duplicate listener')
        return self._add('create_listener', LISTENER, attrs,
                         parent=self.records[attrs['load_balancer_id']])

    def get_listener(self, listener_id):
        return self._view(self._get(LISTENER, listener_id))

    def listeners(self, **query):
        return self._list(LISTENER, **query)

    def delete_listener(self, listener_id, ignore_missing=True):
        self._remove('delete_listener', LISTENER, listener_id,
                     ignore_missing)

    # pools

    def create_pool(self, **attrs):
        listener = self.records[attrs['listener_id']]
        pool = self._add('create_pool', POOL, attrs, parent=listener)
        listener['attrs']['default_pool_id'] = pool.id
        return pool

    def get_pool(self, pool_id):
        return self._view(self._get(POOL, pool_id))

    def update_pool(self, pool_id, **attrs):
        self._settle()
        self._maybe_fail('update_pool')
        rec = self._get(POOL, pool_id)
        self._check_mutable('update_pool', self._lb_of(rec))
        rec['attrs'].update(attrs)
        rec['attrs']['provisioning_status'] = (
            lb_const.PROVISIONING_PENDING_UPDATE)
        rec['ready_at'] = self.clock.now() + self.delay
        rec['target'] = lb_const.PROVISIONING_ACTIVE
        self.calls.append(('update_pool', POOL, rec['attrs'].get('name')))
        self._settle()
        return self._view(rec)

    def delete_pool(self, pool_id, ignore_missing=True):
        rec = self.records.get(pool_id)
        self._remove('delete_pool', POOL, pool_id, ignore_missing)
        if rec is not None:
            self._unlink(rec)

    # health monitors

    def create_health_monitor(self, **attrs):
        pool = self.records[attrs['pool_id']]
        monitor = self._add('create_health_monitor', MONITOR, attrs,
                            parent=pool)
        pool['attrs']['health_monitor_id'] = monitor.id
        return monitor

    def get_health_monitor(self, monitor_id):
        return self._view(self._get(MONITOR, monitor_id))

    def delete_health_monitor(self, monitor_id, ignore_missing=True):
        rec = self.records.get(monitor_id)
        self._remove('delete_health_monitor', MONITOR, monitor_id,
                     ignore_missing)
        if rec is not None:
            self._unlink(rec)

    # members

    def create_member(self, pool_id, **attrs):
        attrs['pool_id'] = pool_id
        for rec in self._list(MEMBER, pool_id=pool_id,
                              address=attrs['address'],
                              protocol_port=attrs['protocol_port']):
            raise os_exc.ConflictException('duplicate member %s' % rec.id)
        return self._add('create_member', MEMBER, attrs,
                         parent=self.records[pool_id])

    def get_member(self, member_id, pool):
        rec = self._get(MEMBER, member_id)
        if rec['attrs']['pool_id'] != pool:
            raise os_exc.NotFoundException('member not in pool')
        return self._view(rec)

    def members(self, pool_id, **query):
        return self._list(MEMBER, pool_id=pool_id, **query)

    def delete_member(self, member_id, pool_id, ignore_missing=True):
        self._remove('delete_member', MEMBER, member_id, ignore_missing)


class FakeNetwork(object):
    """In-memory Neutron floating IPs."""

    def __init__(self):
        self.fips = collections.OrderedDict()
        self.calls = []
        self.failures = collections.defaultdict(list)
        self.late_failures = collections.defaultdict(list)
        self._ids = itertools.count(1)

    def fail(self, method, *errors):
        self.failures[method].extend(errors)

    def fail_after(self, method, *errors):
        self.late_failures[method].extend(errors)

    def _maybe_fail(self, failures, method):
        if failures.get(method):
            raise failures[method].pop(0)

    def unbind_port(self, port_id):
        for fip in self.fips.values():
            if port_id and fip['port_id'] == port_id:
                fip['port_id'] = None

    def add_fip(self, address, port_id=None):
        fip_id = 'fip-%d' % next(self._ids)
        self.fips[fip_id] = {'id': fip_id, 'floating_ip_address': address,
                             'port_id': port_id}
        return fip_id

    def ips(self, **query):
        for attrs in list(self.fips.values()):
            if all(attrs.get(k) == v for k, v in query.items()):
                yield os_fip.FloatingIP(**attrs)

    def create_ip(self, **attrs):
        self._maybe_fail(self.failures, 'create_ip')
        self.calls.append(('create_ip', attrs))
        fip_id = self.add_fip('172.24.4.%d' % (len(self.fips) + 10))
        self.fips[fip_id].update(attrs)
        self._maybe_fail(self.late_failures, 'create_ip')
        return os_fip.FloatingIP(**self.fips[fip_id])

    def update_ip(self, fip_id, **attrs):
        self._maybe_fail(self.failures, 'update_ip')
        self.calls.append(('update_ip', fip_id, attrs))
        fip = self.fips[fip_id]
        if fip['port_id'] and attrs.get('port_id') not in (None,
                                                           fip['port_id']):
            raise os_exc.ConflictException('floating IP already bound')
        fip.update(attrs)
        self._maybe_fail(self.late_failures, 'update_ip')
        return os_fip.FloatingIP(**fip)

    def get_ip(self, fip_id):
        return os_fip.FloatingIP(**self.fips[fip_id])
