from . import directories
from . import configs
from .logutil import Logger, info, process_step, warn, error, success, setting_config
from .gdf_tools import to_gdf
from .exporters import export_gdf
from .config_models import GeorefConfig, ProjectConfig, read_config_file
