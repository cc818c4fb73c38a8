"""
Output destination and format, parsed once from the --output string.
"""

from enum import Enum
from pathlib import PurePosixPath
from urllib.parse import urlsplit

from pydantic import BaseModel, ConfigDict

from core.config import (
    DOCUMENT_SUFFIX,
    REMOTE_PREFIX,
    SPREADSHEET_SUFFIX,
    STDOUT_DESTINATION,
)
from core.errors import RenderError


class ExportFormat(str, Enum):
    SPREADSHEET = "xlsx"
    DOCUMENT = "json"


class DeliveryTarget(str, Enum):
    REMOTE = "remote"
    STDOUT = "stdout"
    FILE = "file"


class Destination(BaseModel):
    """Where the export goes and in which format."""

    model_config = ConfigDict(frozen=True)

    raw: str
    target: DeliveryTarget
    export_format: ExportFormat

    @classmethod
    def parse(cls, raw: str) -> "Destination":
        """
        Split a destination string into delivery target and format.

        "https://..." uploads to SharePoint/OneDrive, "-" writes to stdout,
        anything else is a local path. The format follows the suffix
        (.xlsx or .json); stdout always gets JSON.

        Raises:
            RenderError: if no format matches the suffix
        """
        if raw.startswith(REMOTE_PREFIX):
            target = DeliveryTarget.REMOTE
            suffix = PurePosixPath(urlsplit(raw).path).suffix
        elif raw == STDOUT_DESTINATION:
            target = DeliveryTarget.STDOUT
            suffix = DOCUMENT_SUFFIX
        else:
            target = DeliveryTarget.FILE
            suffix = PurePosixPath(raw).suffix

        suffix = suffix.lower()
        if suffix == SPREADSHEET_SUFFIX:
            export_format = ExportFormat.SPREADSHEET
        elif suffix == DOCUMENT_SUFFIX:
            export_format = ExportFormat.DOCUMENT
        else:
            raise RenderError(f"Format unknown for {raw}")

        return cls(raw=raw, target=target, export_format=export_format)
