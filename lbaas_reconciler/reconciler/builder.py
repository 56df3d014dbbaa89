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

from oslo_config import cfg
from oslo_log import log as logging

from lbaas_reconciler import constants as lb_const
from lbaas_reconciler import exceptions as lb_exc
from lbaas_reconciler.objects import lbaas as obj_lbaas
from lbaas_reconciler import utils

CONF = cfg.CONF
LOG = logging.getLogger(__name__)

MIN_PORT = 1
MAX_PORT = 65535


def validate_config(external=False):
    """Checks the [loadbalancer] options a reconciliation depends on."""
    lb_cfg = CONF.loadbalancer
    if not lb_cfg.subnet_id:
        raise lb_exc.ValidationError(
            '[loadbalancer]subnet_id must be configured', 'configuration')
    if lb_cfg.lb_version != lb_const.LB_VERSION_V2:
        raise lb_exc.ValidationError(
            'unsupported [loadbalancer]lb_version %r, only %r is supported'
            % (lb_cfg.lb_version, lb_const.LB_VERSION_V2), 'configuration')
    if external and not lb_cfg.floating_network_id:
        raise lb_exc.ValidationError(
            '[loadbalancer]floating_network_id must be configured for '
            'services requesting an external address', 'configuration')


def _validate_port_number(value, what):
    if value is None or not MIN_PORT <= value <= MAX_PORT:
        raise lb_exc.ValidationError(
            'invalid %s %r, must be within %d..%d'
            % (what, value, MIN_PORT, MAX_PORT), 'service ports')


def _validate_ports(ports):
    if not ports:
        raise lb_exc.ValidationError('service has no ports', 'service ports')
    seen = set()
    for port in ports:
        if port.protocol not in lb_const.SUPPORTED_PROTOCOLS:
            raise lb_exc.ValidationError(
                'unsupported protocol %r for port %s, supported protocols '
                'are %s' % (port.protocol, port.port,
                            ', '.join(lb_const.SUPPORTED_PROTOCOLS)),
                'service ports')
        _validate_port_number(port.port, 'port')
        _validate_port_number(port.node_port, 'node port')
        key = (port.protocol, port.port)
        if key in seen:
            raise lb_exc.ValidationError(
                'duplicate %s port %s' % key, 'service ports')
        seen.add(key)


def _get_usable_nodes(nodes):
    usable = []
    for node in nodes:
        if not node.address:
            LOG.debug("Skipping node %s without an internal address",
                      node.name)
            continue
        if not node.ready:
            LOG.debug("Skipping node %s, it is not ready", node.name)
            continue
        usable.append(node)
    return usable


def _get_session_persistence(service_spec):
    if (service_spec.session_affinity ==
            lb_const.K8S_SESSION_AFFINITY_CLIENT_IP):
        return lb_const.SESSION_PERSISTENCE_SOURCE_IP
    return None


def build_desired_state(service_spec, nodes, cluster_name=None):
    """Computes the load balancer a service should have.

    This is a pure function: it neither reads nor modifies the provider.

    :param service_spec: `LBaaSServiceSpec`
    :param nodes: list of `LBaaSNode`, nodes without an address or not ready
                  are left out
    :param cluster_name: overrides `[loadbalancer]cluster_name`
    :returns: `LBaaSDesiredState`
    :raises ValidationError: the service ports are unusable
    """
    _validate_ports(service_spec.ports)

    lb_name = utils.get_loadbalancer_name(service_spec.namespace,
                                          service_spec.name, cluster_name)
    usable_nodes = _get_usable_nodes(nodes)
    persistence = _get_session_persistence(service_spec)

    listeners = []
    for port in service_spec.ports:
        members = []
        seen = set()
        for node in usable_nodes:
            key = (node.address, port.node_port)
            if key in seen:
                continue
            seen.add(key)
            members.append(obj_lbaas.LBaaSDesiredMember(
                name=utils.get_member_name(lb_name, node.name,
                                           port.node_port),
                address=node.address,
                port=port.node_port,
                weight=lb_const.DEFAULT_MEMBER_WEIGHT))

        listener_name = utils.get_listener_name(lb_name, port.protocol,
                                                port.port)
        if not members:
            LOG.warning("No usable node for listener %s, its pool will be "
                        "empty", listener_name)
        listeners.append(obj_lbaas.LBaaSDesiredListener(
            name=listener_name,
            protocol=port.protocol,
            port=port.port,
            node_port=port.node_port,
            lb_algorithm=CONF.loadbalancer.lb_method,
            session_persistence=persistence,
            monitor=CONF.loadbalancer.create_monitor,
            members=members))

    return obj_lbaas.LBaaSDesiredState(name=lb_name,
                                       listeners=listeners,
                                       external=service_spec.external,
                                       lb_ip=service_spec.lb_ip)
