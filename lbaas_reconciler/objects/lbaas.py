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

from oslo_versionedobjects import base as obj_base
from oslo_versionedobjects import fields as obj_fields

from lbaas_reconciler.objects import base as lbaas_obj


@obj_base.VersionedObjectRegistry.register
class LBaaSPortSpec(lbaas_obj.LBaaSReconcilerObjectBase):
    VERSION = '1.0'

    fields = {
        'name': obj_fields.StringField(nullable=True, default=None),
        'protocol': obj_fields.StringField(),
        'port': obj_fields.IntegerField(),
        'target_port': obj_fields.StringField(nullable=True, default=None),
        'node_port': obj_fields.IntegerField(nullable=True, default=None),
    }


@obj_base.VersionedObjectRegistry.register
class LBaaSNode(lbaas_obj.LBaaSReconcilerObjectBase):
    VERSION = '1.0'

    fields = {
        'name': obj_fields.StringField(nullable=True, default=None),
        'address': obj_fields.StringField(nullable=True, default=None),
        'ready': obj_fields.BooleanField(default=False),
    }


@obj_base.VersionedObjectRegistry.register
class LBaaSServiceSpec(lbaas_obj.LBaaSReconcilerObjectBase):
    VERSION = '1.0'

    fields = {
        'namespace': obj_fields.StringField(),
        'name': obj_fields.StringField(),
        'ports': obj_fields.ListOfObjectsField(LBaaSPortSpec.__name__,
                                               default=[]),
        'external': obj_fields.BooleanField(default=False),
        'lb_ip': obj_fields.StringField(nullable=True, default=None),
        'session_affinity': obj_fields.StringField(nullable=True,
                                                   default=None),
    }


@obj_base.VersionedObjectRegistry.register
class LBaaSDesiredMember(lbaas_obj.LBaaSReconcilerObjectBase):
    VERSION = '1.0'

    fields = {
        'name': obj_fields.StringField(),
        'address': obj_fields.StringField(),
        'port': obj_fields.IntegerField(),
        'weight': obj_fields.IntegerField(default=1),
    }


@obj_base.VersionedObjectRegistry.register
class LBaaSDesiredListener(lbaas_obj.LBaaSReconcilerObjectBase):
    VERSION = '1.0'

    fields = {
        'name': obj_fields.StringField(),
        'protocol': obj_fields.StringField(),
        'port': obj_fields.IntegerField(),
        'node_port': obj_fields.IntegerField(),
        'lb_algorithm': obj_fields.StringField(),
        'session_persistence': obj_fields.StringField(nullable=True,
                                                      default=None),
        'monitor': obj_fields.BooleanField(default=False),
        'members': obj_fields.ListOfObjectsField(LBaaSDesiredMember.__name__,
                                                 default=[]),
    }


@obj_base.VersionedObjectRegistry.register
class LBaaSDesiredState(lbaas_obj.LBaaSReconcilerObjectBase):
    VERSION = '1.0'

    fields = {
        'name': obj_fields.StringField(),
        'listeners': obj_fields.ListOfObjectsField(
            LBaaSDesiredListener.__name__, default=[]),
        'external': obj_fields.BooleanField(default=False),
        'lb_ip': obj_fields.StringField(nullable=True, default=None),
    }


@obj_base.VersionedObjectRegistry.register
class LBaaSPubIp(lbaas_obj.LBaaSReconcilerObjectBase):
    VERSION = '1.0'

    fields = {
        'ip_id': obj_fields.StringField(),
        'ip_addr': obj_fields.IPAddressField(),
        'alloc_method': obj_fields.StringField(),
    }


@obj_base.VersionedObjectRegistry.register
class LBaaSStatus(lbaas_obj.LBaaSReconcilerObjectBase):
    VERSION = '1.0'

    fields = {
        'ingress': obj_fields.ListOfStringsField(default=[]),
        'provisioning_status': obj_fields.StringField(nullable=True,
                                                      default=None),
        'empty_listeners': obj_fields.ListOfStringsField(default=[]),
        'degraded': obj_fields.BooleanField(default=False),
    }
