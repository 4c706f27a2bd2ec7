"""Constants used in the project."""

from enum import Enum


class ExitCodes(Enum):
    """Exit codes for the program.

    Args:
        Enum (int): Exit codes for the program.
    """

    SUCCESS = 0
    FILE_ERROR = 1
    CONNECTION_ERROR = 2
    CHECKSUM_ERROR = 3
    RESOLUTION_ERROR = 4


class Constants:  # pylint: disable=too-few-public-methods
    """General constants used in the project.
    Data holder for configuration constants; not intended to provide behavior.
    """

    REGISTRY_URL_NPM = "https://registry.npmjs.org/"
    PACKAGE_JSON_FILE = "package.json"
    METADATA_FILE = "index.json"
    TARBALL_EXTENSION = ".tgz"
    # Responses for these URLs are never kept in the response cache
    UNCACHED_SUFFIXES = (".tgz",)

    REQUEST_TIMEOUT = 20  # Timeout in seconds for every registry request
    DOWNLOAD_CONCURRENCY = 5

    # node-pre-gyp template values that are not variant dependent
    BINARY_CONFIGURATION = "Release"
    BINARY_TOOLSET = ""
    NODE_ABI_PREFIX = "node-v"

    LOG_FORMAT = "[%(levelname)s] %(message)s"
    LOG_FILE_FORMAT = "%(asctime)s %(levelname)s %(name)s %(message)s"
    ENV_LOG_LEVEL = "DEPMIRROR_LOG_LEVEL"
