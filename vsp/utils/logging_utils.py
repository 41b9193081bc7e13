import logging
import sys
from typing import Optional, Union

from vsp.utils.io import load_config_section


def setup_logging(level: Optional[Union[int, str]] = None, verbose: bool = False):
    """Basic logging configuration. The level defaults to the logging section of the config."""
    if level is None:
        level = load_config_section("logging").get("level", "INFO")
    log_level = logging.DEBUG if verbose else level
    logging.basicConfig(
        level=log_level,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        stream=sys.stdout,
    )
    # Quiet down some overly verbose loggers
    logging.getLogger("rasterio").setLevel(logging.WARNING)
    logging.getLogger("fiona").setLevel(logging.WARNING)
    logging.getLogger("matplotlib").setLevel(logging.WARNING)
