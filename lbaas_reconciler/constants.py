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

PROTOCOL_TCP = 'TCP'
PROTOCOL_UDP = 'UDP'
SUPPORTED_PROTOCOLS = (PROTOCOL_TCP, PROTOCOL_UDP)

MONITOR_TYPES = {
    PROTOCOL_TCP: 'TCP',
    PROTOCOL_UDP: 'UDP-CONNECT',
}

LB_VERSION_V2 = 'v2'

PROVISIONING_ACTIVE = 'ACTIVE'
PROVISIONING_ERROR = 'ERROR'
PROVISIONING_DELETED = 'DELETED'
PROVISIONING_PENDING_CREATE = 'PENDING_CREATE'
PROVISIONING_PENDING_UPDATE = 'PENDING_UPDATE'
PROVISIONING_PENDING_DELETE = 'PENDING_DELETE'

RESOURCE_LOADBALANCER = 'loadbalancer'
RESOURCE_LISTENER = 'listener'
RESOURCE_POOL = 'pool'
RESOURCE_MEMBER = 'member'
RESOURCE_MONITOR = 'healthmonitor'
RESOURCE_FLOATING_IP = 'floatingip'

K8S_SERVICE_TYPE_LOADBALANCER = 'LoadBalancer'
K8S_SESSION_AFFINITY_NONE = 'None'
K8S_SESSION_AFFINITY_CLIENT_IP = 'ClientIP'
K8S_NODE_INTERNAL_IP = 'InternalIP'
K8S_NODE_READY = 'Ready'

SESSION_PERSISTENCE_SOURCE_IP = 'SOURCE_IP'

LB_NAME_PREFIX = 'kube_service'
# Octavia rejects names longer than this
MAX_RESOURCE_NAME_LENGTH = 255

FIP_DESCRIPTION_PREFIX = 'Floating IP for Kubernetes service'

DEFAULT_MEMBER_WEIGHT = 1
