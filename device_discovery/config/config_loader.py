"""
Configuration loader for Device Discovery Module.

Loads the scan tuning file (with fallback to defaults), the SNMP device
profile document holding the credential table and the OID profiles, and the
known-device table. The device tables are required: any problem with them is
fatal and raised before a scan starts.
"""

import csv
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, List, Optional

import jsonschema
import yaml

from ..core.data_models import (
    DEVICE_FIELDS,
    CredentialTable,
    DeviceTables,
    KnownDeviceTable,
    OIDProfile,
)
from ..core.device_prober import DEFAULT_CANARY_OID
from ..utils.error_handler import ConfigFileNotFound, ConfigLoadError
from ..utils.logger import Logger, get_logger

DEVICE_PROFILE_SCHEMA = {
    "type": "object",
    "required": ["credentials", "oids"],
    "properties": {
        "credentials": {
            "type": "object",
            "minProperties": 1,
            "additionalProperties": {
                "type": "array",
                "minItems": 1,
                "items": {"type": "string", "minLength": 1},
            },
        },
        "oids": {
            "type": "object",
            "additionalProperties": {
                "type": "object",
                "required": list(DEVICE_FIELDS),
                "properties": {
                    name: {
                        "type": "array",
                        "minItems": 1,
                        "items": {"type": "string", "minLength": 1},
                    }
                    for name in DEVICE_FIELDS
                },
                "additionalProperties": False,
            },
        },
    },
}

KNOWN_DEVICE_HEADER = ("prefix", "type")


@dataclass
class ScanConfig:
    """Tuning parameters for liveness and SNMP probing."""
    ping_attempts: int = 2
    ping_timeout: float = 1.0
    snmp_timeout: float = 2.0
    snmp_retries: int = 1
    snmp_port: int = 161
    snmp_version: int = 2
    canary_oid: str = DEFAULT_CANARY_OID
    concurrency: Optional[int] = None


class ConfigLoader:
    """
    Loads and validates the configuration files of a run.

    Scan tuning falls back to defaults when its file is missing or broken.
    The credential/OID profile document and the known-device table raise
    ConfigFileNotFound or ConfigLoadError instead.
    """

    def __init__(self, config_dir: Optional[str] = None, logger: Optional[Logger] = None):
        """
        Initialize ConfigLoader.

        Args:
            config_dir: Directory containing configuration files.
                       Defaults to the config directory relative to this file.
        """
        if config_dir is None:
            self.config_dir = Path(__file__).parent
        else:
            self.config_dir = Path(config_dir)

        self.logger = logger or get_logger(__name__)

    def _resolve(self, path: str) -> Path:
        candidate = Path(path)
        if candidate.is_absolute() or candidate.exists():
            return candidate
        return self.config_dir / candidate

    def load_scan_config(self, config_file: str = "scan_config.yml") -> ScanConfig:
        """
        Load scan tuning from YAML file.

        Args:
            config_file: Name of the scan configuration file

        Returns:
            ScanConfig object with loaded or default configuration
        """
        config_path = self._resolve(config_file)

        if not config_path.exists():
            self.logger.warning(f"Scan config file not found at {config_path}. Using default configuration.")
            return ScanConfig()

        try:
            with open(config_path, 'r', encoding='utf-8') as f:
                config_data = yaml.safe_load(f)
        except yaml.YAMLError as e:
            self.logger.error(f"Error parsing scan config file {config_path}: {e}")
            self.logger.warning("Using default scan configuration.")
            return ScanConfig()

        if not config_data or 'scan' not in config_data or not isinstance(config_data['scan'], dict):
            self.logger.warning(f"Invalid scan config structure in {config_path}. Using default configuration.")
            return ScanConfig()

        scan_data = config_data['scan']
        defaults = ScanConfig()

        concurrency = scan_data.get('concurrency')
        if concurrency is not None:
            concurrency = self._validate_positive_int(concurrency, 'concurrency', None)

        return ScanConfig(
            ping_attempts=self._validate_positive_int(scan_data.get('ping_attempts', defaults.ping_attempts), 'ping_attempts', defaults.ping_attempts),
            ping_timeout=self._validate_positive_float(scan_data.get('ping_timeout', defaults.ping_timeout), 'ping_timeout', defaults.ping_timeout),
            snmp_timeout=self._validate_positive_float(scan_data.get('snmp_timeout', defaults.snmp_timeout), 'snmp_timeout', defaults.snmp_timeout),
            snmp_retries=self._validate_non_negative_int(scan_data.get('snmp_retries', defaults.snmp_retries), 'snmp_retries', defaults.snmp_retries),
            snmp_port=self._validate_port(scan_data.get('snmp_port', defaults.snmp_port)),
            snmp_version=self._validate_snmp_version(scan_data.get('snmp_version', defaults.snmp_version)),
            canary_oid=str(scan_data.get('canary_oid', defaults.canary_oid)),
            concurrency=concurrency,
        )

    def load_device_profiles(self, config_file: str = "device_profiles.yml"):
        """
        Load the credential table and the OID profiles.

        Args:
            config_file: YAML document with 'credentials' and 'oids' sections

        Returns:
            Tuple of (CredentialTable, OIDProfile)

        Raises:
            ConfigFileNotFound: If the file does not exist
            ConfigLoadError: If the document is not valid
        """
        config_path = self._resolve(config_file)
        if not config_path.exists():
            raise ConfigFileNotFound(str(config_path))

        try:
            with open(config_path, 'r', encoding='utf-8') as f:
                document = yaml.safe_load(f)
        except yaml.YAMLError as e:
            raise ConfigLoadError(f"Error parsing device profiles {config_path}: {e}") from e

        try:
            jsonschema.validate(instance=document, schema=DEVICE_PROFILE_SCHEMA)
        except jsonschema.ValidationError as e:
            location = "/".join(str(part) for part in e.absolute_path) or "<root>"
            raise ConfigLoadError(
                f"Invalid device profiles in {config_path} at {location}: {e.message}"
            ) from e

        credentials = document['credentials']
        profiles = document['oids']

        missing = [vendor for vendor in credentials if vendor not in profiles]
        if missing:
            raise ConfigLoadError(
                f"Vendors without an OID profile in {config_path}: {', '.join(missing)}"
            )

        self._warn_shared_communities(credentials)

        self.logger.info(
            f"Loaded device profiles for {len(credentials)} vendors from {config_path}"
        )
        return CredentialTable(credentials), OIDProfile(profiles)

    def load_known_devices(self, known_devices_file: str = "known_devices.csv", delimiter: str = ";") -> KnownDeviceTable:
        """
        Load the model prefix to device type table.

        Rows are PREFIX<delimiter>TYPE. Blank lines, lines starting with '#'
        and a header as the first remaining row are ignored.

        Raises:
            ConfigFileNotFound: If the file does not exist
            ConfigLoadError: If a row is malformed or the table is empty
        """
        path = self._resolve(known_devices_file)
        if not path.exists():
            raise ConfigFileNotFound(str(path))

        pairs: List[tuple] = []
        first_row = True
        try:
            with open(path, 'r', encoding='utf-8', newline='') as f:
                for line_number, row in enumerate(csv.reader(f, delimiter=delimiter), start=1):
                    if not row or not "".join(row).strip() or row[0].lstrip().startswith('#'):
                        continue
                    cells = [cell.strip() for cell in row]
                    is_header = first_row and tuple(c.lower() for c in cells[:2]) == KNOWN_DEVICE_HEADER
                    first_row = False
                    if is_header:
                        continue
                    if len(cells) != 2 or not cells[0] or not cells[1]:
                        raise ConfigLoadError(
                            f"Malformed known-device row {line_number} in {path}: {delimiter.join(row)}"
                        )
                    pairs.append((cells[0], cells[1]))
        except (OSError, csv.Error) as e:
            raise ConfigLoadError(f"Cannot read known devices from {path}: {e}") from e

        if not pairs:
            raise ConfigLoadError(f"Known-device table {path} is empty")

        self.logger.info(f"Loaded {len(pairs)} known device prefixes from {path}")
        return KnownDeviceTable.from_pairs(pairs)

    def load_tables(
        self,
        profiles_file: str = "device_profiles.yml",
        known_devices_file: str = "known_devices.csv",
    ) -> DeviceTables:
        """Load every table a probing run needs."""
        credentials, profiles = self.load_device_profiles(profiles_file)
        known_devices = self.load_known_devices(known_devices_file)
        return DeviceTables(credentials, profiles, known_devices)

    def _warn_shared_communities(self, credentials: Dict[str, List[str]]) -> None:
        # A community reused across vendors binds every such device to the
        # first vendor listed.
        owners: Dict[str, str] = {}
        for vendor, communities in credentials.items():
            for community in communities:
                if community in owners and owners[community] != vendor:
                    self.logger.warning(
                        f"Community shared by vendors '{owners[community]}' and '{vendor}'; "
                        f"devices will bind to '{owners[community]}'"
                    )
                owners.setdefault(community, vendor)

    def _validate_positive_int(self, value: Any, field_name: str, default: Optional[int]) -> Optional[int]:
        """
        Validate that a value is a positive integer.

        Returns:
            Validated integer value or default
        """
        try:
            int_value = int(value)
            if int_value <= 0:
                self.logger.warning(f"Invalid {field_name}: {value}. Must be positive. Using default: {default}")
                return default
            return int_value
        except (ValueError, TypeError):
            self.logger.warning(f"Invalid {field_name}: {value}. Must be an integer. Using default: {default}")
            return default

    def _validate_non_negative_int(self, value: Any, field_name: str, default: int) -> int:
        try:
            int_value = int(value)
            if int_value < 0:
                self.logger.warning(f"Invalid {field_name}: {value}. Must not be negative. Using default: {default}")
                return default
            return int_value
        except (ValueError, TypeError):
            self.logger.warning(f"Invalid {field_name}: {value}. Must be an integer. Using default: {default}")
            return default

    def _validate_positive_float(self, value: Any, field_name: str, default: float) -> float:
        try:
            float_value = float(value)
            if float_value <= 0:
                self.logger.warning(f"Invalid {field_name}: {value}. Must be positive. Using default: {default}")
                return default
            return float_value
        except (ValueError, TypeError):
            self.logger.warning(f"Invalid {field_name}: {value}. Must be a number. Using default: {default}")
            return default

    def _validate_port(self, port: Any) -> int:
        port_value = self._validate_positive_int(port, 'snmp_port', 161)
        if port_value > 65535:
            self.logger.warning(f"Invalid snmp_port: {port}. Using default: 161")
            return 161
        return port_value

    def _validate_snmp_version(self, version: Any) -> int:
        """
        Validate SNMP version.

        Only community-based versions are supported: 1 and 2 (v2c).
        """
        if version in (1, 2, "1", "2", "2c"):
            return 1 if str(version) == "1" else 2
        self.logger.warning(f"Invalid SNMP version: {version}. Must be 1 or 2. Using default: 2")
        return 2
