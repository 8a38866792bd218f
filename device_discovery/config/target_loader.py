"""
Target input for the Device Discovery Module.

Reads scan targets from the sources the command line accepts: a flat file
of delimited CIDR/address tokens, or one column of a CSV file with a header
row. Tokens are returned as read; expansion and validation happen in the
AddressRangeExpander.
"""

import csv
from pathlib import Path
from typing import List, Optional

from ..utils.error_handler import ConfigFileNotFound, ConfigLoadError, InvalidTargetFormat
from ..utils.logger import Logger, get_logger


class TargetLoader:
    """Reads target tokens from files."""

    def __init__(self, logger: Optional[Logger] = None):
        self.logger = logger or get_logger(__name__)

    @staticmethod
    def split_tokens(text: str, delimiter: str = ",") -> List[str]:
        """
        Split text into target tokens.

        Newlines always separate tokens; `delimiter` additionally separates
        tokens on one line. Blank tokens and '#' comments are dropped.
        """
        tokens = []
        for line in text.splitlines():
            line = line.split("#", 1)[0]
            for token in line.split(delimiter):
                token = token.strip()
                if token:
                    tokens.append(token)
        return tokens

    def load_list_file(self, path: str, delimiter: str = ",") -> List[str]:
        """
        Read tokens from a flat file.

        Raises:
            ConfigFileNotFound: If the file does not exist
            InvalidTargetFormat: If the file holds no tokens
        """
        file_path = Path(path)
        if not file_path.exists():
            raise ConfigFileNotFound(str(file_path))

        try:
            text = file_path.read_text(encoding="utf-8")
        except OSError as e:
            raise ConfigLoadError(f"Cannot read targets from {file_path}: {e}") from e

        tokens = self.split_tokens(text, delimiter)
        if not tokens:
            raise InvalidTargetFormat(f"No targets found in {file_path}")

        self.logger.info(f"Read {len(tokens)} target tokens from {file_path}")
        return tokens

    def load_csv_column(self, path: str, column: str, delimiter: str = ",") -> List[str]:
        """
        Read the values of one column of a CSV file with a header row.

        The column name is matched case-insensitively. Empty cells are
        skipped.

        Raises:
            ConfigFileNotFound: If the file does not exist
            InvalidTargetFormat: If the column is missing or empty
        """
        file_path = Path(path)
        if not file_path.exists():
            raise ConfigFileNotFound(str(file_path))

        try:
            with open(file_path, "r", encoding="utf-8-sig", newline="") as f:
                reader = csv.DictReader(f, delimiter=delimiter)
                fieldnames = reader.fieldnames or []
                matches = [name for name in fieldnames if name and name.strip().lower() == column.strip().lower()]
                if not matches:
                    raise InvalidTargetFormat(
                        f"Column '{column}' not found in {file_path} (columns: {', '.join(fieldnames)})"
                    )
                key = matches[0]
                tokens = [row[key].strip() for row in reader if row.get(key) and row[key].strip()]
        except (OSError, csv.Error) as e:
            raise ConfigLoadError(f"Cannot read targets from {file_path}: {e}") from e

        if not tokens:
            raise InvalidTargetFormat(f"Column '{column}' of {file_path} holds no targets")

        self.logger.info(f"Read {len(tokens)} targets from column '{key}' of {file_path}")
        return tokens
