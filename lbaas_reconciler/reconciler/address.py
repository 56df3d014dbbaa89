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

from lbaas_reconciler import constants as lb_const
from lbaas_reconciler import exceptions as lb_exc
from lbaas_reconciler.objects import lbaas as obj_lbaas
from lbaas_reconciler.reconciler import lbaasv2

LOG = logging.getLogger(__name__)


def resolve_address(loadbalancer, pub_ip_info=None):
    """Returns the address a service is reachable at.

    The floating IP wins over the VIP when one is associated. None is
    returned for a load balancer that is still being provisioned and has
    no VIP yet.

    :raises AddressUnavailableError: the load balancer is ACTIVE and has
                                     no address at all
    """
    if pub_ip_info is not None and pub_ip_info.ip_addr:
        return str(pub_ip_info.ip_addr)
    if loadbalancer.vip_address:
        return loadbalancer.vip_address
    if loadbalancer.provisioning_status == lb_const.PROVISIONING_ACTIVE:
        raise lb_exc.AddressUnavailableError(
            lbaasv2.describe(lb_const.RESOURCE_LOADBALANCER,
                             loadbalancer.name))
    return None


def build_status(loadbalancer, pub_ip_info=None, empty_listeners=None):
    empty_listeners = list(empty_listeners or [])
    address = resolve_address(loadbalancer, pub_ip_info)
    if empty_listeners:
        LOG.warning("Load balancer %(lb)s has listeners without any member: "
                    "%(listeners)s", {'lb': loadbalancer.name,
                                      'listeners': ', '.join(empty_listeners)})
    return obj_lbaas.LBaaSStatus(
        ingress=[address] if address else [],
        provisioning_status=loadbalancer.provisioning_status,
        empty_listeners=empty_listeners,
        degraded=bool(empty_listeners))
