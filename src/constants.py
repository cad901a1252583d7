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
    RESOLUTION_ERROR = 3


class RecipeSourceTypes(Enum):
    """Recipe source tags understood by the standard composite source.

    Args:
        Enum (string): Source tag written before the "+" of a recipe identifier.
    """

    GITHUB = "github"


class Constants:  # pylint: disable=too-few-public-methods
    """General constants used in the project.
    Data holder for configuration constants; not intended to provide behavior.
    """

    PROJECT_FILE = "depforge.json"
    LOCK_FILE = "depforge.lock.json"
    BUCKCONFIG_FILE = ".buckconfig"
    DEPENDENCIES_FOLDER = "depforge"
    DEPS_FILE = "DEPFORGE_DEPS"
    DEPS_VARIABLE = "DEPFORGE_DEPS"

    CONFIG_DIR = ".depforge"
    CONFIG_FILE = "config.yaml"
    ENV_CONFIG = "DEPFORGE_CONFIG"
    ENV_LOG_LEVEL = "DEPFORGE_LOG_LEVEL"

    LOG_FORMAT = "[%(levelname)s] %(message)s"
    REQUEST_TIMEOUT = 30  # Timeout in seconds for each network attempt
    DOWNLOAD_CHUNK_SIZE = 64 * 1024
    HASH_CHUNK_SIZE = 8192

    # Repository API constants
    GITHUB_API_BASE = "https://api.github.com"
    GITHUB_RAW_BASE = "https://raw.githubusercontent.com"
    GITHUB_CODELOAD_BASE = "https://codeload.github.com"
    GITHUB_WEB_BASE = "https://github.com"
    ENV_GITHUB_TOKEN = "GITHUB_TOKEN"
    REPO_API_PER_PAGE = 100
    HTTP_RETRY_MAX = 3
    HTTP_RETRY_BASE_DELAY_SEC = 0.3
    USER_AGENT = "depforge/0.4"

    # Resolver
    RESOLVER_MAX_REOPENS = 16
