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
import sys

from keystoneauth1 import loading as ks_loading
from oslo_config import cfg
from oslo_log import log as logging

from lbaas_reconciler._i18n import _
from lbaas_reconciler import version

LOG = logging.getLogger(__name__)

OPENSTACK_GROUP = 'openstack'

loadbalancer_opts = [
    cfg.StrOpt('subnet_id',
               help=_("Neutron subnet ID the load balancer VIP and the "
                      "backend members are attached to.")),
    cfg.StrOpt('network_id',
               help=_("Neutron network ID for the load balancer VIP. When "
                      "set it takes precedence over subnet_id for the VIP, "
                      "members still use subnet_id.")),
    cfg.StrOpt('floating_network_id',
               help=_("External network floating IPs are allocated from. "
                      "Required only for services requesting an externally "
                      "routable address.")),
    cfg.StrOpt('floating_subnet_id',
               help=_("Optional subnet of floating_network_id to allocate "
                      "floating IPs from."),
               default=None),
    cfg.StrOpt('lb_version',
               help=_("Load balancer API dialect to target. Only 'v2' "
                      "(Octavia) is supported."),
               default='v2'),
    cfg.StrOpt('lb_method',
               help=_("The load-balancer algorithm that distributes traffic "
                      "to the pool members. The options are: ROUND_ROBIN, "
                      "LEAST_CONNECTIONS, SOURCE_IP and SOURCE_IP_PORT."),
               default='ROUND_ROBIN'),
    cfg.StrOpt('lb_provider',
               help=_("Octavia provider used for new load balancers. The "
                      "Octavia default provider is used when unset."),
               default=None),
    cfg.StrOpt('cluster_name',
               help=_("Cluster name embedded in load balancer names, so "
                      "that several clusters can share one project."),
               default='kubernetes'),
    cfg.BoolOpt('create_monitor',
                help=_("Create a health monitor for every pool."),
                default=False),
    cfg.IntOpt('monitor_delay',
               help=_("Seconds between two health checks of a member."),
               default=5, min=1),
    cfg.IntOpt('monitor_timeout',
               help=_("Seconds a health check waits for a reply."),
               default=3, min=1),
    cfg.IntOpt('monitor_max_retries',
               help=_("Consecutive failed checks before a member is marked "
                      "down."),
               default=1, min=1, max=10),
    cfg.IntOpt('activation_timeout',
               help=_("Time (in seconds) a whole reconciliation may spend, "
                      "including waiting for Octavia to provision the load "
                      "balancer and its sub-resources."),
               default=600, min=1),
    cfg.IntOpt('max_retries',
               help=_("How many times a provider call failing with a "
                      "transient error (rate limiting, 5xx, connection "
                      "failure) is retried before giving up."),
               default=5, min=0),
    cfg.ListOpt('resource_tags',
                help=_("List of tags that will be applied to the Octavia and "
                       "Neutron resources created by the reconciler."),
                default=[]),
    cfg.StrOpt('service_public_ip_driver',
               help=_("The driver that provides externally routable "
                      "addresses for load balancers."),
               default='neutron_floating_ip'),
]

openstack_opts = [
    cfg.StrOpt('region_name',
               help=_("Region of the OpenStack endpoints to use."),
               default=None),
]

CONF = cfg.CONF
CONF.register_opts(loadbalancer_opts, group='loadbalancer')
CONF.register_opts(openstack_opts, group=OPENSTACK_GROUP)
ks_loading.register_session_conf_options(CONF, OPENSTACK_GROUP)
ks_loading.register_auth_conf_options(CONF, OPENSTACK_GROUP)

logging.register_options(CONF)


def init(args, **kwargs):
    version_lbaas = version.version_info.version_string()
    CONF(args=args, project='lbaas-reconciler', version=version_lbaas,
         **kwargs)


def setup_logging():

    logging.setup(CONF, 'lbaas-reconciler')
    logging.set_defaults(default_log_levels=logging.get_default_log_levels())
    version_lbaas = version.version_info.version_string()
    LOG.info("Logging enabled!")
    LOG.info("%(prog)s version %(version)s",
             {'prog': sys.argv[0], 'version': version_lbaas})
