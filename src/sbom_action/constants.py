from __future__ import annotations

from enum import Enum

ACTION_VERSION = "0.17.0"

SYFT_BINARY_NAME = "syft"
SYFT_VERSION = "v1.14.0"
SYFT_INSTALL_SCRIPT_URL = "https://raw.githubusercontent.com/anchore/syft/main/install.sh"

DEFAULT_FORMAT = "spdx-json"
DEFAULT_RELEASE_REF_PREFIX = "refs/tags/"
RELEASE_ASSET_CONTENT_TYPE = "text/plain"
PRIOR_ARTIFACT_ENV_VAR = "ANCHORE_SBOM_ACTION_PRIOR_ARTIFACT"
SNAPSHOT_FORMAT = "github-json"


class ExitCode(int, Enum):
    """Process exit codes."""

    SUCCESS = 0
    ERROR = 1


# Scanner output format -> artifact file extension. Formats missing here are
# used as the extension verbatim.
FORMAT_EXTENSIONS = {
    "spdx": "spdx",
    "spdx-tag-value": "spdx",
    "spdx-json": "spdx.json",
    "cyclonedx": "cyclonedx.xml",
    "cyclonedx-xml": "cyclonedx.xml",
    "cyclonedx-json": "cyclonedx.json",
    "json": "syft.json",
    "syft-json": "syft.json",
    "github-json": "github.json",
}
