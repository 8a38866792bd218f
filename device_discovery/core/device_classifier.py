"""
Device Classification for the Device Discovery Module.

Maps the model string extracted from a device to a device type using the
known-device table. Rules are model prefixes evaluated in table order and
the first match wins. A model with no matching prefix is a hard failure for
that host.
"""

from dataclasses import replace
from typing import Optional

from .data_models import DeviceAttributes, KnownDeviceTable
from ..utils.error_handler import UnknownDeviceError


class DeviceClassifier:
    """
    Prefix-table device classifier.

    Attributes:
        known_devices: Ordered (prefix, type) pairs
    """

    def __init__(self, known_devices: KnownDeviceTable):
        self.known_devices = known_devices

    def classify(self, model: str, host: Optional[str] = None) -> str:
        """
        Return the device type of a model.

        Args:
            model: Model string extracted from the device
            host: Address the model came from, used in the error

        Returns:
            The type of the first entry whose prefix starts the model

        Raises:
            UnknownDeviceError: If no prefix matches
        """
        for prefix, device_type in self.known_devices:
            if model.startswith(prefix):
                return device_type
        raise UnknownDeviceError(host, model)

    def classify_attributes(self, attributes: DeviceAttributes, host: Optional[str] = None) -> DeviceAttributes:
        """
        Return a copy of attributes with its type filled in.

        Raises:
            UnknownDeviceError: If the model matches no prefix
        """
        return replace(attributes, type=self.classify(attributes.model, host))
