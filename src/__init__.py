"""CollectionMarker: keeps a 'not in any collection' tag in sync on Jellyfin."""

from src.config.settings import get_config
from src.utils.logging import Logger, get_logger
from src.utils.version import get_pyproject_version

__author__ = "CollectionMarker contributors"
__license__ = "MIT"
__version__ = get_pyproject_version()

config = get_config()

log: Logger = get_logger()

COLLECTIONMARKER_HEADER = f"""
+-------------------------------------------------------------------------------+
|                      C O L L E C T I O N   M A R K E R                        |
+-------------------------------------------------------------------------------+
|                                                                               |
|  Version: {__version__:<68}|
|  Marker tag: {config.marker_tag:<65}|
|  Jellyfin: {config.jellyfin.url:<67}|
|  License: {__license__:<68}|
|                                                                               |
+-------------------------------------------------------------------------------+
""".strip()
