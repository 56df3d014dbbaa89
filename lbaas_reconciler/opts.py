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
import copy

from keystoneauth1 import loading as ks_loading
from oslo_log import _options

from lbaas_reconciler import config

_lbaas_reconciler_opts = [
    ('loadbalancer', config.loadbalancer_opts),
    (config.OPENSTACK_GROUP, config.openstack_opts),
]


def list_lbaas_reconciler_opts():
    """Return a list of oslo_config options available in the reconciler.

    Each element of the list is a tuple. The first element is the name of the
    group under which the list of elements in the second element will be
    registered. A group name of None corresponds to the [DEFAULT] group in
    config files.

    This function is also discoverable via the 'lbaas_reconciler' entry point
    under the 'oslo.config.opts' namespace.

    :returns: a list of (group_name, opts) tuples
    """
    ks_opts = (ks_loading.get_session_conf_options() +
               ks_loading.get_auth_common_conf_options())

    return ([(k, copy.deepcopy(o)) for k, o in _lbaas_reconciler_opts] +
            [(config.OPENSTACK_GROUP, copy.deepcopy(ks_opts))] +
            _options.list_opts())
