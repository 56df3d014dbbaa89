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

import abc

from stevedore import driver as stv_driver

from lbaas_reconciler._i18n import _
from lbaas_reconciler import config

_DRIVER_NAMESPACE_BASE = 'lbaas_reconciler.drivers'
_DRIVER_MANAGERS = {}


class DriverBase(object):
    """Base class for reconciler drivers.

    Subclasses must define an *ALIAS* attribute that is used to find a driver
    implementation by `get_instance` class method which utilises
    `stevedore.driver.DriverManager` with the namespace set to
    'lbaas_reconciler.drivers.*ALIAS*' and the name of the driver determined
    from the '[loadbalancer]/*ALIAS*_driver' configuration parameter.
    """

    @classmethod
    def get_instance(cls, specific_driver=None):
        """Get an implementing driver instance.

        :param specific_driver: Loads a specific driver instead of using conf.
        """

        alias = cls.ALIAS
        driver_name = (specific_driver or
                       config.CONF.loadbalancer[alias + '_driver'])
        driver_key = '{}:{}'.format(alias, driver_name)

        try:
            manager = _DRIVER_MANAGERS[driver_key]
        except KeyError:
            manager = stv_driver.DriverManager(
                namespace="%s.%s" % (_DRIVER_NAMESPACE_BASE, alias),
                name=driver_name,
                invoke_on_load=True)
            _DRIVER_MANAGERS[driver_key] = manager

        driver = manager.driver
        if not isinstance(driver, cls):
            raise TypeError(_("Invalid %(alias)r driver type: %(driver)s, "
                              "must be a subclass of %(type)s") % {
                            'alias': alias,
                            'driver': driver.__class__.__name__,
                            'type': cls})
        return driver

    def __str__(self):
        return self.__class__.__name__


class ServicePubIpDriver(DriverBase, metaclass=abc.ABCMeta):
    """Manages the externally routable address of a load balancer."""

    ALIAS = 'service_public_ip'

    @abc.abstractmethod
    def get_pub_ip_info(self, vip_port_id):
        """Get the public IP currently associated to a VIP port.

        :param vip_port_id: Neutron port ID of the load balancer VIP
        :returns: `LBaaSPubIp` or None when nothing is associated
        """
        raise NotImplementedError()

    @abc.abstractmethod
    def acquire_service_pub_ip_info(self, spec_lb_ip, project_id,
                                    port_id_to_be_associated=None,
                                    description=None):
        """Get or allocate a public IP for a service.

        :param spec_lb_ip: address requested by the user, may be None
        :param project_id: OpenStack project owning the address
        :param port_id_to_be_associated: VIP port the address is meant for
        :param description: description set on newly allocated addresses
        :returns: `LBaaSPubIp`
        """
        raise NotImplementedError()

    @abc.abstractmethod
    def associate_pub_ip(self, service_pub_ip_info, vip_port_id):
        """Associate the public IP with the load balancer VIP port.

        :param service_pub_ip_info: `LBaaSPubIp`
        :param vip_port_id: Neutron port ID of the load balancer VIP
        """
        raise NotImplementedError()
