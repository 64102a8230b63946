from .models import (ControlPoint, GeoPoint, MatchedPair, MatchResult, MapView, GeoBounds,
                     ImagePlacement, StrategyKind, TransformState, TransformAccuracy,
                     ChangeReason, PlacementChanged, GeoreferenceResult)
from .errors import (GeoreferenceError, InsufficientControlPointsError, SingularSystemError,
                     InvalidImageDimensionsError, NonFiniteProjectionError, DuplicateControlPointError)
from .affine_solver import solve_affine, transform_accuracy
from .matcher import match_control_points
from .entities import EntityKind, CompositeKind, Origin, EntityRegistration, EntityStore
from .orchestrator import TransformOrchestrator
from .synchronizer import EntitySynchronizer, EntityUpdate, SyncReport, project_pixel
from .session import GeoreferencingSession
