"""Constants used in the project."""

from enum import Enum


class ExitCodes(Enum):
    """Exit codes for the program.

    Args:
        Enum (int): Exit codes for the program.
    """

    SUCCESS = 0
    FILE_ERROR = 1
    RESOLUTION_ERROR = 2
    LOAD_ERROR = 3


class Stage(Enum):
    """Script stages run by the data loader, in execution order.

    Args:
        Enum (string): Stage name, also the entry script prefix.
    """

    SETTINGS = "settings"
    DATA = "data"


class Constants:  # pylint: disable=too-few-public-methods
    """General constants used in the project.
    Data holder for configuration constants; not intended to provide behavior.
    """

    # Mods shipped with the host itself, loaded from the data directory
    BUILTIN_MODS = ["core", "base", "elevated-rails", "quality", "space-age"]
    CORE_MOD = "core"
    BASE_MOD = "base"
    CORE_TITLE = "Core data"
    DEFAULT_DEPENDENCIES = ["base"]

    INFO_FILE = "info.json"
    MOD_LIST_FILE = "mod-list.json"
    ZIP_SUFFIX = ".zip"

    LUALIB_FOLDER = "lualib"
    DATALOADER_SCRIPT = "lualib/dataloader.lua"
    SUBSTAGES = ["", "-updates", "-final-fixes"]
    SETTING_TYPES = [
        "bool-setting",
        "int-setting",
        "double-setting",
        "string-setting",
        "color-setting",
    ]

    # Emulated host version exposed to scripts as helpers.game_version
    GAME_VERSION = "2.0.60"
    VERSION_COMPONENT_MAX = 65535

    DUMP_SUFFIX = ".dump.json.deflate"
    HISTORY_SUFFIX = ".history.json"
    # History group for prototype types that defines.prototypes does not list
    UNGROUPED_PROTOTYPES = "other"
    DEFAULT_OUTPUT_DIR = "."
    DEFAULT_WORKERS = 1

    LOG_FORMAT = "[%(levelname)s] %(message)s"
    LOG_LEVEL_ENV = "MODSTAGE_LOG_LEVEL"
    CONFIG_ENV = "MODSTAGE_CONFIG"
