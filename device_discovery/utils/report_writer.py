"""
Report writers for the Device Discovery Module.

Discovery results are written as a ';'-delimited table with the columns IP
and STATUS. Probing results are written as a JSON document mapping each
host address to its device attributes, optionally wrapped by an output
protector.
"""

import csv
import io
import json
from datetime import datetime
from pathlib import Path
from typing import Dict, Optional

from ..core.data_models import DiscoveryResult, ProbingResult
from .logger import Logger, get_logger
from .network_utils import sort_addresses

DISCOVERY_HEADER = ("IP", "STATUS")
DISCOVERY_DELIMITER = ";"


class ReportWriter:
    """
    Serializes scan results and writes them to disk.

    Rendering and writing are separate so results can be rendered for
    stdout or for an output protector without touching the filesystem.
    """

    def __init__(self, logger: Optional[Logger] = None):
        self.logger = logger or get_logger(__name__)

    def render_discovery(self, result: DiscoveryResult) -> str:
        """
        Render a discovery result as IP;STATUS rows, sorted by address.

        Returns:
            The table including its header row
        """
        buffer = io.StringIO()
        writer = csv.writer(buffer, delimiter=DISCOVERY_DELIMITER, lineterminator="\n")
        writer.writerow(DISCOVERY_HEADER)
        for address in sort_addresses(result.hosts):
            writer.writerow((address, result.hosts[address].status.value))
        return buffer.getvalue()

    def probing_document(self, result: ProbingResult) -> Dict[str, Dict[str, str]]:
        """Return the JSON-serializable address to attributes mapping."""
        return {
            address: result.devices[address].to_dict()
            for address in sort_addresses(result.devices)
        }

    def render_probing(self, result: ProbingResult) -> str:
        return json.dumps(self.probing_document(result), indent=2, ensure_ascii=False)

    def write_discovery(self, result: DiscoveryResult, output_path: str) -> str:
        """
        Write a discovery table.

        Returns:
            str: Path of the written file
        """
        path = self._prepare_path(output_path)
        self._write_text(path, self.render_discovery(result))
        self.logger.info(f"Discovery report with {len(result.hosts)} hosts written to {path}")
        return str(path)

    def write_probing(self, result: ProbingResult, output_path: str, protector=None) -> str:
        """
        Write a probing document, encrypted when a protector is given.

        Args:
            result: Probing result
            output_path: Destination file
            protector: Optional OutputProtector wrapping the document

        Returns:
            str: Path of the written file
        """
        path = self._prepare_path(output_path)
        payload = self.render_probing(result)
        if protector is not None:
            payload = protector.protect(payload.encode("utf-8"))
        self._write_text(path, payload)
        self.logger.info(
            f"Probing report with {len(result.devices)} devices written to {path}"
            + (f" (protected: {protector.scheme})" if protector is not None else "")
        )
        return str(path)

    def default_output_path(self, output_dir: str, mode: str, extension: str) -> str:
        """
        Build a timestamped file name inside output_dir, avoiding collisions.
        """
        timestamp = datetime.now().strftime("%Y%m%d_%H%M%S")
        path = Path(output_dir) / f"{mode}_{timestamp}.{extension}"
        return str(self._handle_file_collision(path))

    def _prepare_path(self, output_path: str) -> Path:
        path = Path(output_path)
        path.parent.mkdir(parents=True, exist_ok=True)
        return path

    def _write_text(self, path: Path, content: str) -> None:
        try:
            with open(path, "w", encoding="utf-8", newline="") as f:
                f.write(content)
        except OSError as e:
            self.logger.error(f"Failed to write report to {path}: {e}")
            raise

    @staticmethod
    def _handle_file_collision(filepath: Path) -> Path:
        """Append a counter to the file name until it does not exist."""
        if not filepath.exists():
            return filepath

        counter = 1
        while True:
            candidate = filepath.with_name(f"{filepath.stem}_{counter}{filepath.suffix}")
            if not candidate.exists():
                return candidate
            counter += 1
