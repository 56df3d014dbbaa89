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

import hashlib
import random

from keystoneauth1 import exceptions as ks_exc
from openstack import exceptions as os_exc
from oslo_config import cfg
from oslo_log import log

from lbaas_reconciler import constants
from lbaas_reconciler import exceptions
from lbaas_reconciler.objects import lbaas as obj_lbaas

CONF = cfg.CONF
LOG = log.getLogger(__name__)

DEFAULT_INTERVAL = 1
DEFAULT_JITTER = 3
MAX_BACKOFF = 60
MAX_ATTEMPTS = 10

HTTP_CONFLICT = 409
HTTP_TOO_MANY_REQUESTS = 429
HTTP_NOT_IMPLEMENTED = 501

# Definitive answers, whether or not the SDK attached a status code.
_FATAL_ERRORS = (os_exc.BadRequestException,
                 os_exc.ForbiddenException,
                 os_exc.NotFoundException,
                 os_exc.ConflictException,
                 os_exc.PreconditionFailedException,
                 os_exc.InvalidRequest)


def _truncate_name(name):
    if len(name) <= constants.MAX_RESOURCE_NAME_LENGTH:
        return name
    digest = hashlib.sha1(name.encode('utf-8')).hexdigest()[:8]
    keep = constants.MAX_RESOURCE_NAME_LENGTH - len(digest) - 1
    return '%s-%s' % (name[:keep], digest)


def get_loadbalancer_name(namespace, name, cluster_name=None):
    """Returns the stable Octavia name of the service load balancer.

    The name is the only link between a service and its load balancer, no
    mapping is stored anywhere, so the result must only depend on the
    arguments (and the configured cluster name).
    """
    cluster_name = cluster_name or CONF.loadbalancer.cluster_name
    return _truncate_name('%s_%s_%s_%s' % (constants.LB_NAME_PREFIX,
                                           cluster_name, namespace, name))


def get_listener_name(lb_name, protocol, port):
    return _truncate_name('%s:%s:%s' % (lb_name, protocol, port))


def get_member_name(lb_name, node_name, port):
    return _truncate_name('%s:%s:%s' % (lb_name, node_name, port))


def exponential_backoff(attempt, interval=DEFAULT_INTERVAL,
                        max_backoff=MAX_BACKOFF, jitter=DEFAULT_JITTER):
    """Return exponential backoff duration with jitter.

    This implements a variation of exponential backoff algorithm [1] (expected
    backoff E(c) = interval * 2 ** attempt / 2).

    [1] https://en.wikipedia.org/wiki/Exponential_backoff
    """

    if attempt >= MAX_ATTEMPTS:
        # No need to calculate very long intervals
        attempt = MAX_ATTEMPTS

    backoff = 2 ** attempt * interval

    if max_backoff is not None and backoff > max_backoff:
        backoff = max_backoff

    if jitter:
        backoff += random.randint(0, jitter)

    return backoff


def is_transient_error(ex):
    """Tells whether a provider error is worth retrying.

    Rate limiting, 5xx responses (except 501, which is Octavia's way of
    saying a feature is not supported) and connection failures are
    transient. Any other HTTP error is a definitive answer.
    """
    if isinstance(ex, (ks_exc.RetriableConnectionFailure,
                       ks_exc.UnknownConnectionError)):
        return True
    if isinstance(ex, _FATAL_ERRORS):
        return False
    if isinstance(ex, os_exc.HttpException):
        code = ex.status_code
        if code is None or code == HTTP_TOO_MANY_REQUESTS:
            return True
        return code >= 500 and code != HTTP_NOT_IMPLEMENTED
    return isinstance(ex, os_exc.SDKException)


def get_status_code(ex):
    return getattr(ex, 'status_code', None)


def translate_provider_error(ex, resource=None, operation=None):
    """Maps an openstacksdk/keystoneauth error to the reconciler taxonomy."""
    msg = exceptions.format_msg(ex)
    if is_transient_error(ex):
        return exceptions.TransientAPIError(msg, resource, operation)
    if (isinstance(ex, os_exc.ConflictException) or
            get_status_code(ex) == HTTP_CONFLICT):
        return exceptions.ResourceConflictError(msg, resource, operation)
    return exceptions.ValidationError(msg, resource, operation)


def get_service_spec(service):
    """Converts a Kubernetes Service dict into `LBaaSServiceSpec`."""
    metadata = service['metadata']
    spec = service.get('spec', {})
    ports = [obj_lbaas.LBaaSPortSpec(name=port.get('name'),
                                     protocol=port.get('protocol', 'TCP'),
                                     port=port['port'],
                                     target_port=str(port.get('targetPort',
                                                              port['port'])),
                                     node_port=port.get('nodePort'))
             for port in spec.get('ports', [])]
    return obj_lbaas.LBaaSServiceSpec(
        namespace=metadata.get('namespace', 'default'),
        name=metadata['name'],
        ports=ports,
        external=(spec.get('type') ==
                  constants.K8S_SERVICE_TYPE_LOADBALANCER),
        lb_ip=spec.get('loadBalancerIP') or None,
        session_affinity=spec.get('sessionAffinity',
                                  constants.K8S_SESSION_AFFINITY_NONE))


def _get_node_internal_address(node):
    # NOTE: only the first InternalIP is used, a node with several internal
    # addresses still contributes a single member per pool.
    for address in node.get('status', {}).get('addresses', []):
        if address.get('type') == constants.K8S_NODE_INTERNAL_IP:
            return address.get('address') or None
    return None


def _is_node_ready(node):
    for condition in node.get('status', {}).get('conditions', []):
        if condition.get('type') == constants.K8S_NODE_READY:
            return condition.get('status') == 'True'
    return False


def get_nodes(nodes):
    """Converts Kubernetes Node dicts into `LBaaSNode` objects."""
    result = []
    for idx, node in enumerate(nodes):
        address = _get_node_internal_address(node)
        name = node.get('metadata', {}).get('name') or address or str(idx)
        result.append(obj_lbaas.LBaaSNode(name=name, address=address,
                                          ready=_is_node_ready(node)))
    return result
