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


class LBaaSReconcilerException(Exception):
    """Base class for errors returned by a reconciliation.

    `resource` names the sub-resource that was being handled (for example
    ``listener kube_service_kubernetes_ns_svc:TCP:80``) and `operation` the
    provider call that failed (``create``, ``delete``, ``wait`` ...). Both are
    optional and only used to build a message useful for the operator.
    """

    def __init__(self, message, resource=None, operation=None):
        self.resource = resource
        self.operation = operation
        if operation and resource:
            message = '%s of %s failed: %s' % (operation, resource, message)
        elif resource:
            message = '%s: %s' % (resource, message)
        self.message = message
        super(LBaaSReconcilerException, self).__init__(message)


class ValidationError(LBaaSReconcilerException):
    """Malformed input or configuration, or a request the provider refused.

    Never retried.
    """


class TransientAPIError(LBaaSReconcilerException):
    """Provider call kept failing with a retriable error."""

    def __init__(self, message, resource=None, operation=None, attempts=None):
        self.attempts = attempts
        if attempts:
            message = '%s (gave up after %d attempts)' % (message, attempts)
        super(TransientAPIError, self).__init__(message, resource, operation)


class ResourceConflictError(LBaaSReconcilerException):
    """Identity could not be resolved to exactly one provider resource."""


class ProvisioningError(LBaaSReconcilerException):
    def __init__(self, resource, status, operation='wait'):
        self.status = status
        super(ProvisioningError, self).__init__(
            'provider reported provisioning status %s' % status,
            resource, operation)


class ProvisioningTimeoutError(LBaaSReconcilerException):
    def __init__(self, resource=None, status=None, timeout=None):
        self.status = status
        self.timeout = timeout
        msg = 'deadline exceeded'
        if timeout is not None:
            msg = '%s (%.3gs budget)' % (msg, timeout)
        if status:
            msg = '%s while in %s status' % (msg, status)
        super(ProvisioningTimeoutError, self).__init__(msg, resource, 'wait')


class AddressUnavailableError(LBaaSReconcilerException):
    """Load balancer is ACTIVE but exposes neither VIP nor floating IP.

    This is a provider consistency violation and is not retried.
    """

    def __init__(self, resource):
        super(AddressUnavailableError, self).__init__(
            'load balancer is ACTIVE but has no VIP nor floating IP address',
            resource, 'resolve address')


def format_msg(exception):
    return "%s: %s" % (exception.__class__.__name__, exception)
