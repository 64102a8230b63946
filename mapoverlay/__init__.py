from . import globals
from .globals import configs, directories
