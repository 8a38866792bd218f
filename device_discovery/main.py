"""
Main entry point for the Device Discovery Module.

This module provides the command-line interface for the discovery tool,
including argument parsing, pre-flight checks, configuration loading and
graceful shutdown handling.
"""

import argparse
import os
import signal
import sys
from pathlib import Path
from typing import List, Optional

from . import __version__
from .config.config_loader import ConfigLoader
from .config.target_loader import TargetLoader
from .core.data_models import OutputPolicy, TargetSpec
from .core.scanner_orchestrator import ScannerOrchestrator
from .scanners.ping_probe import LivenessProbe
from .utils.error_handler import (
    ConfigurationError,
    DeviceDiscoveryError,
    ErrorContext,
    ErrorHandler,
    ErrorSeverity,
    ErrorType,
    InvalidTargetFormat,
    OutputProtectionError,
    ToolValidator,
)
from .utils.logger import LogLevel, get_logger, set_log_level
from .utils.output_protection import (
    FernetProtector,
    PassphraseProtector,
    generate_key_file,
    unprotect_document,
)
from .utils.report_writer import ReportWriter

EXIT_OK = 0
EXIT_NO_RESULTS = 1
EXIT_CONFIG_ERROR = 2
EXIT_INTERRUPTED = 130


class DeviceDiscoveryApp:
    """
    Main application class for Device Discovery Module.

    Handles CLI commands, pre-flight checks, and application lifecycle.
    """

    def __init__(self, install_signal_handlers: bool = True):
        """Initialize the application."""
        self.logger = get_logger(__name__)
        self.error_handler = ErrorHandler(self.logger)
        self.orchestrator: Optional[ScannerOrchestrator] = None
        self.shutdown_requested = False

        if install_signal_handlers:
            signal.signal(signal.SIGINT, self._signal_handler)
            signal.signal(signal.SIGTERM, self._signal_handler)

    def _signal_handler(self, signum: int, frame) -> None:
        """
        Handle shutdown signals gracefully.

        The first signal stops dispatching new hosts and lets in-flight
        probes finish within their timeouts; a second one exits at once.
        """
        signal_names = {signal.SIGINT: "SIGINT", signal.SIGTERM: "SIGTERM"}
        signal_name = signal_names.get(signum, f"Signal {signum}")

        if not self.shutdown_requested:
            self.logger.warning(f"Received {signal_name} - finishing in-flight hosts...")
            self.shutdown_requested = True
            if self.orchestrator is not None:
                self.orchestrator.cancel()
        else:
            self.logger.error("Force shutdown requested - terminating immediately")
            sys.exit(EXIT_INTERRUPTED)

    def _perform_preflight_checks(self) -> bool:
        """
        Check the external tools the liveness probe needs.

        Returns:
            bool: True if all checks pass, False otherwise
        """
        self.logger.section("PRE-FLIGHT CHECKS")
        ping_command = LivenessProbe(self.logger).build_command("127.0.0.1", 1.0)
        all_valid, missing = ToolValidator(self.error_handler, ping_command).validate_all_tools()

        if all_valid:
            self.logger.success("All pre-flight checks passed")
        else:
            self.logger.error(f"Pre-flight checks failed for: {', '.join(missing)}")
        return all_valid

    def _build_target(self, args: argparse.Namespace) -> TargetSpec:
        """
        Build the scan target from whichever input option was given.

        Raises:
            InvalidTargetFormat: If the target input is malformed
            ConfigurationError: If a target file cannot be read
        """
        loader = TargetLoader(self.logger)

        if args.network:
            return TargetSpec(networks=tuple(TargetLoader.split_tokens(args.network, ",")))
        if args.targets_file:
            return TargetSpec(networks=tuple(loader.load_list_file(args.targets_file, args.delimiter)))
        if args.csv_file:
            if not args.column:
                raise InvalidTargetFormat("--csv-file requires --column")
            return TargetSpec(networks=tuple(loader.load_csv_column(args.csv_file, args.column, args.delimiter)))
        return TargetSpec(hosts=tuple(TargetLoader.split_tokens(args.hosts, ",")))

    def _load_scan_config(self, args: argparse.Namespace):
        config = ConfigLoader(args.config_dir, self.logger).load_scan_config(args.scan_config)
        if args.concurrency is not None:
            if args.concurrency < 1:
                raise ConfigurationError("--concurrency must be at least 1")
            config.concurrency = args.concurrency
        return config

    def run(self, args: argparse.Namespace) -> int:
        """
        Run the selected command.

        Args:
            args: Parsed command line arguments

        Returns:
            int: Exit code
        """
        commands = {
            "discover": self._run_discover,
            "probe": self._run_probe,
            "decrypt": self._run_decrypt,
            "genkey": self._run_genkey,
        }

        try:
            return commands[args.command](args)
        except InvalidTargetFormat as e:
            self._report_startup_error(e, ErrorType.VALIDATION_ERROR, "build_target")
            return EXIT_CONFIG_ERROR
        except ConfigurationError as e:
            self._report_startup_error(e, ErrorType.CONFIGURATION_ERROR, "load_configuration")
            return EXIT_CONFIG_ERROR
        except OutputProtectionError as e:
            self._report_startup_error(e, ErrorType.FILE_ERROR, "output_protection")
            return EXIT_CONFIG_ERROR
        except KeyboardInterrupt:
            self.logger.warning("Interrupted by user")
            return EXIT_INTERRUPTED

    def _report_startup_error(self, error: DeviceDiscoveryError, error_type: ErrorType, operation: str) -> None:
        self.error_handler.handle_error(
            error,
            ErrorContext(
                error_type=error_type,
                severity=ErrorSeverity.HIGH,
                operation=operation,
                component="DeviceDiscoveryApp",
            ),
        )

    def _run_discover(self, args: argparse.Namespace) -> int:
        target = self._build_target(args)
        scan_config = self._load_scan_config(args)

        if not args.skip_checks and not self._perform_preflight_checks():
            self.logger.error("Pre-flight checks failed. Use --skip-checks to bypass.")
            return EXIT_CONFIG_ERROR

        self.orchestrator = ScannerOrchestrator(scan_config=scan_config, logger=self.logger)
        policy = OutputPolicy.UP_ONLY if args.up_only else OutputPolicy.ALL_HOSTS
        result = self.orchestrator.run_discovery(target, policy)

        writer = ReportWriter(self.logger)
        output = args.output or writer.default_output_path(args.output_dir, "discovery", "csv")
        path = writer.write_discovery(result, output)
        self.logger.success(f"Discovery report saved to: {path}")

        if self.orchestrator.cancelled:
            return EXIT_INTERRUPTED
        return EXIT_OK

    def _run_probe(self, args: argparse.Namespace) -> int:
        target = self._build_target(args)
        loader = ConfigLoader(args.config_dir, self.logger)
        scan_config = self._load_scan_config(args)
        tables = loader.load_tables(args.profiles, args.known_devices)
        protector = self._build_protector(args)

        if not args.no_ping and not args.skip_checks and not self._perform_preflight_checks():
            self.logger.error("Pre-flight checks failed. Use --skip-checks or --no-ping to bypass.")
            return EXIT_CONFIG_ERROR

        self.orchestrator = ScannerOrchestrator(scan_config=scan_config, logger=self.logger)
        result = self.orchestrator.run_probing(target, tables, skip_liveness=args.no_ping)

        writer = ReportWriter(self.logger)
        extension = "enc" if protector is not None else "json"
        output = args.output or writer.default_output_path(args.output_dir, "probing", extension)
        path = writer.write_probing(result, output, protector)
        self.logger.success(f"Probing report saved to: {path}")

        if self.orchestrator.cancelled:
            return EXIT_INTERRUPTED
        if not result.devices:
            self.logger.error("No host was identified")
            return EXIT_NO_RESULTS
        return EXIT_OK

    def _build_protector(self, args: argparse.Namespace):
        if args.encrypt_key_file:
            return FernetProtector.from_key_file(args.encrypt_key_file)
        if args.encrypt_passphrase_env:
            return PassphraseProtector(self._read_passphrase(args.encrypt_passphrase_env))
        return None

    @staticmethod
    def _read_passphrase(variable: str) -> str:
        passphrase = os.environ.get(variable)
        if not passphrase:
            raise OutputProtectionError(f"Environment variable {variable} is not set")
        return passphrase

    def _run_decrypt(self, args: argparse.Namespace) -> int:
        input_path = Path(args.input)
        try:
            document = input_path.read_text(encoding="utf-8")
        except OSError as e:
            raise OutputProtectionError(f"Cannot read {input_path}: {e}") from e

        key = None
        if args.key_file:
            try:
                key = Path(args.key_file).read_bytes().strip()
            except OSError as e:
                raise OutputProtectionError(f"Cannot read key file {args.key_file}: {e}") from e
        passphrase = self._read_passphrase(args.passphrase_env) if args.passphrase_env else None

        plaintext = unprotect_document(document, key=key, passphrase=passphrase).decode("utf-8")
        if args.output:
            Path(args.output).write_text(plaintext, encoding="utf-8")
            self.logger.success(f"Decrypted report saved to: {args.output}")
        else:
            print(plaintext)
        return EXIT_OK

    def _run_genkey(self, args: argparse.Namespace) -> int:
        path = generate_key_file(args.key_file)
        self.logger.success(f"New key written to: {path}")
        return EXIT_OK


def _add_target_arguments(parser: argparse.ArgumentParser) -> None:
    target = parser.add_mutually_exclusive_group(required=True)
    target.add_argument("--network", "-n", help="CIDR network(s) to scan, comma separated (e.g. 192.168.1.0/24)")
    target.add_argument("--targets-file", help="File with CIDR/address tokens")
    target.add_argument("--csv-file", help="CSV file with a header row; use --column to pick the target column")
    target.add_argument("--hosts", help="Comma separated host addresses, scanned without range expansion")

    parser.add_argument("--column", help="Column of --csv-file holding the targets")
    parser.add_argument("--delimiter", default=",", help="Token delimiter for --targets-file / --csv-file (default: ',')")


def _add_common_arguments(parser: argparse.ArgumentParser) -> None:
    parser.add_argument("--config-dir", help="Directory containing configuration files. Defaults to device_discovery/config/")
    parser.add_argument("--scan-config", default="scan_config.yml", help="Scan tuning file (default: scan_config.yml)")
    parser.add_argument("--concurrency", "-j", type=int, help="Hosts probed in parallel (default: CPU count)")
    parser.add_argument("--output", "-o", help="Output file")
    parser.add_argument("--output-dir", default="results", help="Directory for generated report names (default: results)")
    parser.add_argument("--skip-checks", action="store_true", help="Skip pre-flight checks for the ping binary")


def create_argument_parser() -> argparse.ArgumentParser:
    """
    Create and configure the command line argument parser.

    Returns:
        argparse.ArgumentParser: Configured argument parser
    """
    parser = argparse.ArgumentParser(
        prog="device_discovery",
        description="Device Discovery Module - host discovery and SNMP device fingerprinting",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  python -m device_discovery discover -n 192.168.1.0/24              # Ping sweep, all hosts
  python -m device_discovery discover -n 10.0.0.0/24 --up-only        # Only reachable hosts
  python -m device_discovery probe --targets-file sites.txt           # Fingerprint devices
  python -m device_discovery probe --hosts 10.0.0.1 --no-ping         # Probe without ping gate
  python -m device_discovery genkey --key-file report.key
  python -m device_discovery probe -n 10.0.0.0/28 --encrypt-key-file report.key
  python -m device_discovery decrypt --input results/probing.enc --key-file report.key
        """
    )
    parser.add_argument("--verbose", "-v", action="store_true", help="Enable verbose logging output")
    parser.add_argument("--quiet", "-q", action="store_true", help="Only log warnings and errors")
    parser.add_argument("--version", action="version", version=f"Device Discovery Module {__version__}")

    subparsers = parser.add_subparsers(dest="command", required=True)

    discover = subparsers.add_parser("discover", help="Find live hosts and write an IP;STATUS table")
    _add_target_arguments(discover)
    _add_common_arguments(discover)
    discover.add_argument("--up-only", action="store_true", help="Only report hosts that are up")

    probe = subparsers.add_parser("probe", help="Fingerprint devices over SNMP and classify them")
    _add_target_arguments(probe)
    _add_common_arguments(probe)
    probe.add_argument("--profiles", default="device_profiles.yml", help="Credential/OID profile document (default: device_profiles.yml)")
    probe.add_argument("--known-devices", default="known_devices.csv", help="Known-device table (default: known_devices.csv)")
    probe.add_argument("--no-ping", action="store_true", help="Probe hosts without checking liveness first")
    protection = probe.add_mutually_exclusive_group()
    protection.add_argument("--encrypt-key-file", help="Encrypt the report with this Fernet key file")
    protection.add_argument("--encrypt-passphrase-env", metavar="VAR", help="Encrypt the report with the passphrase in environment variable VAR")

    decrypt = subparsers.add_parser("decrypt", help="Decrypt a protected probing report")
    decrypt.add_argument("--input", "-i", required=True, help="Protected report")
    decrypt.add_argument("--output", "-o", help="Plaintext output file (default: stdout)")
    secret = decrypt.add_mutually_exclusive_group(required=True)
    secret.add_argument("--key-file", help="Fernet key file")
    secret.add_argument("--passphrase-env", metavar="VAR", help="Environment variable holding the passphrase")

    genkey = subparsers.add_parser("genkey", help="Generate a Fernet key file")
    genkey.add_argument("--key-file", required=True, help="Where to write the key")

    return parser


def main(argv: Optional[List[str]] = None) -> int:
    """
    Main entry point for the Device Discovery Module.

    Returns:
        int: Exit code (0 for success, non-zero for failure)
    """
    parser = create_argument_parser()
    args = parser.parse_args(argv)

    if args.verbose:
        set_log_level(LogLevel.DEBUG)
    elif args.quiet:
        set_log_level(LogLevel.WARNING)

    app = DeviceDiscoveryApp()
    return app.run(args)


if __name__ == "__main__":
    sys.exit(main())
