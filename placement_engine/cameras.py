"""Camera archetype catalog used to bias composition. Read-only."""

import math
from dataclasses import dataclass
from typing import Dict, Optional, Tuple

from .schema import Point, rotate_local, wrap_angle

# Shared camera constants (metres, degrees)
CAMERA: Dict[str, float] = {
    "height": 16.0,
    "distance": 40.0,
    "close_up_distance": 12.0,
    "low_angle_height": 4.0,
    "orbit_radius": 35.0,
    "wide_height": 50.0,
    "wide_distance": 70.0,
    "side_offset": 35.0,
}

FOV: Dict[str, float] = {"normal": 60.0, "wide": 75.0, "tight": 40.0}


@dataclass(frozen=True)
class CompositionCamera:
    name: str
    distance: float  # Camera to focal subject
    height: float
    fov: float  # Horizontal, degrees

    @property
    def half_fov(self) -> float:
        return math.radians(self.fov) / 2


CAMERA_ARCHETYPES: Dict[str, CompositionCamera] = {
    cam.name: cam for cam in (
        CompositionCamera("tracking_behind", CAMERA["distance"], CAMERA["height"], FOV["normal"]),
        CompositionCamera("wide_establishing", CAMERA["wide_distance"], CAMERA["wide_height"], FOV["wide"]),
        CompositionCamera("close_up", CAMERA["close_up_distance"], CAMERA["height"] * 0.5, FOV["tight"]),
        CompositionCamera("dramatic_low_angle", CAMERA["close_up_distance"] * 1.5, CAMERA["low_angle_height"],
                          FOV["normal"]),
        CompositionCamera("orbit", CAMERA["orbit_radius"], CAMERA["height"], FOV["normal"]),
        CompositionCamera("tracking_side", CAMERA["side_offset"], CAMERA["height"] * 0.6, FOV["normal"]),
    )
}

DEFAULT_ARCHETYPE = "wide_establishing"

# Depth bands as multiples of the camera-to-focal distance
DEPTH_BANDS: Dict[str, Tuple[float, float]] = {
    "foreground": (0.3, 0.7),
    "midground": (0.8, 1.2),
    "background": (1.3, 1.8),
}


def get_camera(name: Optional[str]) -> Optional[CompositionCamera]:
    if name is None:
        return None
    return CAMERA_ARCHETYPES.get(name.strip().lower())


def depth_band(archetype: str, role: str) -> Tuple[float, float]:
    """(near, far) distance from the camera for a layer role."""
    camera = get_camera(archetype) or CAMERA_ARCHETYPES[DEFAULT_ARCHETYPE]
    if role not in DEPTH_BANDS:
        raise ValueError(f"Invalid depth role: {role}. Must be one of {list(DEPTH_BANDS)}")
    near, far = DEPTH_BANDS[role]
    return near * camera.distance, far * camera.distance


@dataclass(frozen=True)
class CameraRig:
    """A camera looking along view_yaw at a focal point."""
    camera: CompositionCamera
    position: Point
    view_yaw: float

    def distance_to(self, point: Point) -> float:
        return math.hypot(point[0] - self.position[0], point[1] - self.position[1])

    def bearing(self, point: Point) -> float:
        """Angle of point off the view axis, signed, radians."""
        yaw = math.atan2(point[0] - self.position[0], point[1] - self.position[1])
        return wrap_angle(yaw - self.view_yaw)

    def in_view(self, point: Point) -> bool:
        return abs(self.bearing(point)) <= self.camera.half_fov

    def point_at(self, bearing: float, distance: float) -> Point:
        yaw = self.view_yaw + bearing
        return (self.position[0] + math.sin(yaw) * distance, self.position[1] + math.cos(yaw) * distance)


def camera_rig(archetype: str, focal: Point, view_yaw: float = 0.0) -> CameraRig:
    camera = get_camera(archetype) or CAMERA_ARCHETYPES[DEFAULT_ARCHETYPE]
    dx, dz = rotate_local(view_yaw, 0.0, -camera.distance)
    return CameraRig(camera, (focal[0] + dx, focal[1] + dz), view_yaw)
