"""
Motion models for single-object state estimation.

Each model fixes the state layout and the structure of its transition at
construction. The ``use_dim`` / ``use_vel`` flags only change which
components are measured, never the dimensionality of the state.

Available models:
    - KalmanFilter2D: [x, y, vx, vy, w, h], constant velocity
    - KalmanFilter2DHeading: [x, y, o, vx, vy, vo, w, h], body-frame
      velocity rotated by the heading (extended filter)
    - KalmanFilter3D: [x, y, z, vx, vy, vz, w, h, d], constant velocity
    - KalmanFilter3DFixed: [x, y, z, w, h], static object
"""

import logging
import math
from enum import Enum
from typing import Callable

import numpy as np

from .kalman import BaseExtendedKalmanFilter, BaseKalmanFilter

logger = logging.getLogger(__name__)


def wrap_angle(angle: float) -> float:
    """Wrap an angle to (-pi, pi]."""
    wrapped = math.atan2(math.sin(angle), math.cos(angle))
    return math.pi if wrapped == -math.pi else wrapped


class KalmanFilter2D(BaseKalmanFilter):
    """
    Planar constant-velocity filter.

    State: [x, y, vx, vy, w, h]. By default the position and the box size
    are observed and the velocity is derived by the filter.
    """

    dim_x = 6
    position_indices = (0, 1)
    velocity_indices = (2, 3)
    size_indices = (4, 5)
    default_process_noise = (9.0, 9.0, 200.0, 200.0, 5.0, 5.0)
    default_measurement_noise = (2.0, 2.0, 200.0, 200.0, 2.0, 2.0)

    def _transition_matrix(self, dt: float) -> np.ndarray:
        F = np.eye(self.dim_x, dtype=np.float64)
        F[0, 2] = dt
        F[1, 3] = dt
        return F


class KalmanFilter2DHeading(BaseExtendedKalmanFilter):
    """
    Planar filter with heading and angular velocity.

    State: [x, y, o, vx, vy, vo, w, h]. The velocity (vx, vy) is expressed
    in the object frame; each step the heading advances by vo * dt and the
    velocity is rotated into the image frame before being integrated.
    """

    dim_x = 8
    position_indices = (0, 1)
    heading_index = 2
    velocity_indices = (3, 4)
    angular_velocity_index = 5
    size_indices = (6, 7)
    default_process_noise = (9.0, 9.0, 0.5, 200.0, 200.0, 1.0, 5.0, 5.0)
    default_measurement_noise = (2.0, 2.0, 1.0, 200.0, 200.0, 1.0, 2.0, 2.0)

    def _transition_function(self, x: np.ndarray, dt: float) -> np.ndarray:
        px, py, o, vx, vy, vo = x[:6, 0]
        theta = o + vo * dt
        c, s = math.cos(theta), math.sin(theta)

        x_new = x.copy()
        x_new[0, 0] = px + (vx * c - vy * s) * dt
        x_new[1, 0] = py + (vx * s + vy * c) * dt
        x_new[2, 0] = theta
        return x_new

    def _transition_jacobian(self, x: np.ndarray, dt: float) -> np.ndarray:
        o, vx, vy, vo = x[2, 0], x[3, 0], x[4, 0], x[5, 0]
        theta = o + vo * dt
        c, s = math.cos(theta), math.sin(theta)

        # Derivatives of the displacement w.r.t. the heading angle
        dx_dtheta = (-vx * s - vy * c) * dt
        dy_dtheta = (vx * c - vy * s) * dt

        J = np.eye(self.dim_x, dtype=np.float64)
        J[0, 2] = dx_dtheta
        J[0, 3] = c * dt
        J[0, 4] = -s * dt
        J[0, 5] = dx_dtheta * dt
        J[1, 2] = dy_dtheta
        J[1, 3] = s * dt
        J[1, 4] = c * dt
        J[1, 5] = dy_dtheta * dt
        J[2, 5] = dt
        return J

    def _after_step(self) -> None:
        self._kf.x[self.heading_index, 0] = wrap_angle(
            self._kf.x[self.heading_index, 0])

    @property
    def heading(self) -> float:
        return float(self._kf.x[self.heading_index, 0])

    @property
    def angular_velocity(self) -> float:
        return float(self._kf.x[self.angular_velocity_index, 0])


class KalmanFilter3D(BaseKalmanFilter):
    """
    Volumetric constant-velocity filter.

    State: [x, y, z, vx, vy, vz, w, h, d].
    """

    dim_x = 9
    position_indices = (0, 1, 2)
    velocity_indices = (3, 4, 5)
    size_indices = (6, 7, 8)
    default_process_noise = (9.0, 9.0, 9.0, 200.0, 200.0, 200.0, 5.0, 5.0, 5.0)
    default_measurement_noise = (2.0, 2.0, 2.0, 200.0, 200.0, 200.0, 2.0, 2.0, 2.0)

    def _transition_matrix(self, dt: float) -> np.ndarray:
        F = np.eye(self.dim_x, dtype=np.float64)
        F[0, 3] = dt
        F[1, 4] = dt
        F[2, 5] = dt
        return F


class KalmanFilter3DFixed(BaseKalmanFilter):
    """
    Filter for static objects in three dimensions.

    State: [x, y, z, w, h]. There is no motion model: prediction only grows
    the uncertainty by the process noise.
    """

    dim_x = 5
    position_indices = (0, 1, 2)
    velocity_indices = ()
    size_indices = (3, 4)
    default_process_noise = (9.0, 9.0, 9.0, 5.0, 5.0)
    default_measurement_noise = (2.0, 2.0, 2.0, 2.0, 2.0)

    def configure_observation(self, use_dim: bool, use_vel: bool) -> None:
        if use_vel:
            logger.warning(
                "KalmanFilter3DFixed has no velocity, ignoring use_vel")
        super().configure_observation(use_dim, False)

    def _transition_matrix(self, dt: float) -> np.ndarray:
        return np.eye(self.dim_x, dtype=np.float64)


class MotionModel(Enum):
    """Closed set of supported motion models."""
    LINEAR_2D = "2d"
    HEADING_2D = "2d_heading"
    LINEAR_3D = "3d"
    FIXED_3D = "3d_fixed"

    @property
    def filter_class(self) -> type:
        return _FILTER_CLASSES[self]

    @property
    def is_3d(self) -> bool:
        return self in (MotionModel.LINEAR_3D, MotionModel.FIXED_3D)


_FILTER_CLASSES = {
    MotionModel.LINEAR_2D: KalmanFilter2D,
    MotionModel.HEADING_2D: KalmanFilter2DHeading,
    MotionModel.LINEAR_3D: KalmanFilter3D,
    MotionModel.FIXED_3D: KalmanFilter3DFixed,
}


def create_filter(model, **kwargs) -> BaseKalmanFilter:
    """
    Create an uninitialized filter for a motion model.

    Args:
        model: MotionModel or its string value ("2d", "2d_heading", ...)
        **kwargs: Filter constructor arguments (dt, use_dim, use_vel,
            process_noise, measurement_noise, initial_uncertainty)

    Returns:
        New filter instance
    """
    return MotionModel(model).filter_class(**kwargs)


def filter_factory(model, **kwargs) -> Callable[[], BaseKalmanFilter]:
    """Bind filter arguments so a tracker can create one filter per track."""
    model = MotionModel(model)
    return lambda: create_filter(model, **kwargs)
