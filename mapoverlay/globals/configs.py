#---------------------
# PROJECTION
#---------------------
EARTH_RADIUS = 6378137.0            # meters, spherical Web Mercator
METERS_PER_PIXEL_AT_EQUATOR = 156543.03392  # zoom 0, 256px tiles
WGS84_CRS = "EPSG:4326"

#---------------------
# AFFINE SOLVER
#---------------------
MIN_SOLVED_POINTS = 3
PIVOT_TOLERANCE = 1e-10

#---------------------
# IMAGE PLACEMENT
#---------------------
DEFAULT_SCALE = 0.8
INITIAL_SCALE = 0.1
INITIAL_OFFSET_DEG = 0.006      # image starts south-west of the map center
INITIAL_HALF_SPAN_DEG = 0.001

#---------------------
# MAP VIEW
#---------------------
DEFAULT_MAP_CENTER = (34.853667, 135.472041)
DEFAULT_ZOOM = 15

#---------------------
# CONFIGURATION FILES
#---------------------
GEOREF_DEFAULTS_FILENAME = 'georef_defaults.yml'
EXAMPLE_PROJECT_FILENAME = 'example_project.yml'
