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
from openstack import exceptions as os_exc
from oslo_config import cfg
from oslo_log import log as logging

from lbaas_reconciler import clients
from lbaas_reconciler import exceptions as lb_exc
from lbaas_reconciler.objects import lbaas as obj_lbaas
from lbaas_reconciler.reconciler import base

CONF = cfg.CONF
LOG = logging.getLogger(__name__)

ALLOC_METHOD_USER = 'user'
ALLOC_METHOD_POOL = 'pool'
ALLOC_METHOD_EXISTING = 'existing'


class FloatingIpServicePubIPDriver(base.ServicePubIpDriver):
    """Manages Neutron floating IPs of load balancer VIPs.

    Service external address support the following:
    1. Floating IP specified by the user (`loadBalancerIP`): the address must
       exist in the project and be either free or already bound to the VIP.
    2. Floating IP allocated from `[loadbalancer]floating_network_id`.

    Floating IPs are never released here, their lifecycle ends with the
    service itself.
    """

    def get_pub_ip_info(self, vip_port_id):
        if not vip_port_id:
            return None
        os_net = clients.get_network_client()
        for entry in os_net.ips(port_id=vip_port_id):
            if entry and entry.floating_ip_address:
                return obj_lbaas.LBaaSPubIp(
                    ip_id=entry.id, ip_addr=entry.floating_ip_address,
                    alloc_method=ALLOC_METHOD_EXISTING)
        return None

    def is_ip_available(self, ip_addr, port_id_to_be_associated=None):
        os_net = clients.get_network_client()
        for entry in os_net.ips(floating_ip_address=ip_addr):
            if not entry or entry.floating_ip_address != ip_addr:
                continue
            if not entry.port_id or (
                    port_id_to_be_associated is not None and
                    entry.port_id == port_id_to_be_associated):
                return entry.id
        LOG.error("Floating IP=%s not available", ip_addr)
        return None

    def allocate_ip(self, pub_net_id, project_id, pub_subnet_id=None,
                    description=None, port_id_to_be_associated=None):
        os_net = clients.get_network_client()

        if port_id_to_be_associated is not None:
            existing = self.get_pub_ip_info(port_id_to_be_associated)
            if existing:
                LOG.debug('FIP %s already allocated to port %s',
                          existing.ip_addr, port_id_to_be_associated)
                return existing.ip_id, existing.ip_addr

        if description:
            # A previous attempt may have allocated the address and failed
            # before associating it.
            for entry in os_net.ips(floating_network_id=pub_net_id,
                                    description=description):
                if entry and not entry.port_id:
                    LOG.debug('Reusing unbound FIP %s of a previous '
                              'allocation', entry.floating_ip_address)
                    return entry.id, entry.floating_ip_address

        request = {'floating_network_id': pub_net_id,
                   'description': description}
        if project_id:
            request['project_id'] = project_id
        if pub_subnet_id:
            request['subnet_id'] = pub_subnet_id
        try:
            fip = os_net.create_ip(**request)
        except os_exc.SDKException:
            LOG.exception("Failed to create floating IP - netid=%s ",
                          pub_net_id)
            raise
        LOG.info("Allocated floating IP %s", fip.floating_ip_address)
        return fip.id, fip.floating_ip_address

    def acquire_service_pub_ip_info(self, spec_lb_ip, project_id,
                                    port_id_to_be_associated=None,
                                    description=None):
        if spec_lb_ip:
            user_specified_ip = str(spec_lb_ip)
            res_id = self.is_ip_available(user_specified_ip,
                                          port_id_to_be_associated)
            if not res_id:
                raise lb_exc.ValidationError(
                    'requested address %s is not an available floating IP'
                    % user_specified_ip, 'floating IP', 'allocate')
            return obj_lbaas.LBaaSPubIp(ip_id=res_id,
                                        ip_addr=user_specified_ip,
                                        alloc_method=ALLOC_METHOD_USER)

        LOG.debug("Trying to allocate public ip from pool")
        public_network_id = CONF.loadbalancer.floating_network_id
        if not public_network_id:
            raise cfg.RequiredOptError('floating_network_id',
                                       cfg.OptGroup('loadbalancer'))
        res_id, alloc_ip_addr = self.allocate_ip(
            public_network_id, project_id,
            pub_subnet_id=CONF.loadbalancer.floating_subnet_id,
            description=description,
            port_id_to_be_associated=port_id_to_be_associated)
        return obj_lbaas.LBaaSPubIp(ip_id=res_id, ip_addr=alloc_ip_addr,
                                    alloc_method=ALLOC_METHOD_POOL)

    def associate_pub_ip(self, service_pub_ip_info, vip_port_id):
        if (not service_pub_ip_info or
                not vip_port_id or
                not service_pub_ip_info.ip_id):
            return
        res_id = service_pub_ip_info.ip_id
        os_net = clients.get_network_client()
        try:
            os_net.update_ip(res_id, port_id=vip_port_id)
        except os_exc.ConflictException:
            LOG.warning("Conflict when assigning floating IP with id %s. "
                        "Checking if it's already assigned correctly.",
                        res_id)
            fip = os_net.get_ip(res_id)
            if fip.port_id != vip_port_id:
                LOG.error('Failed to assign FIP %s to VIP port %s. It is '
                          'probably already bound', res_id, vip_port_id)
                raise
            LOG.debug('FIP %s already assigned to %s', res_id, vip_port_id)
