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

from keystoneauth1 import loading as ks_loading
from keystoneauth1 import session as k_session
from openstack import connection

from lbaas_reconciler import config

_clients = {}
_OPENSTACKSDK = 'openstacksdk'


def get_network_client():
    return _clients[_OPENSTACKSDK].network


def get_loadbalancer_client():
    return _clients[_OPENSTACKSDK].load_balancer


def setup_clients(conn=None):
    """Register the OpenStack connection used by the reconciler.

    Callers that already hold an authenticated `openstack.connection
    .Connection` pass it in; otherwise one is built from the [openstack]
    configuration group.
    """
    if conn is None:
        conn = setup_openstacksdk()
    _clients[_OPENSTACKSDK] = conn
    return conn


def setup_openstacksdk():
    group = config.OPENSTACK_GROUP
    auth_plugin = ks_loading.load_auth_from_conf_options(config.CONF, group)
    session = ks_loading.load_session_from_conf_options(
        config.CONF, group, auth=auth_plugin)

    # NOTE: one connection serves every concurrent reconciliation, so the
    # keystoneauth adapters get a bigger pool than the requests default.
    for scheme in list(session.session.adapters):
        session.session.mount(scheme, k_session.TCPKeepAliveAdapter(
            pool_maxsize=1000))

    return connection.Connection(
        session=session,
        region_name=config.CONF.openstack.region_name)
