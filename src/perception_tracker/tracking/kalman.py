"""
Kalman filter core for object tracking.

This module provides the recursive predict/correct estimator shared by all
motion models. The linear filter wraps filterpy's KalmanFilter; the extended
filter wraps filterpy's ExtendedKalmanFilter and re-linearizes the
transition around the current state on every prediction.

The observation model is a selection matrix: position is always observed,
velocity and size only when enabled with ``use_vel`` / ``use_dim``.
"""

import logging
from typing import Optional, Sequence, Tuple

import numpy as np
from filterpy.kalman import ExtendedKalmanFilter, KalmanFilter

from ..config import ConfigurationError

logger = logging.getLogger(__name__)

# Relative tolerance on negative covariance eigenvalues
PSD_TOLERANCE = 1e-6

# Inflation of the initial variance of components not seen at initialization
UNSEEN_VARIANCE_SCALE = 1000.0


class BaseKalmanFilter:
    """
    Linear Kalman filter over a fixed state layout.

    Subclasses define the state layout through the ``*_indices`` class
    attributes and the motion through ``_transition_matrix``.

    Args:
        dt: Default time step used when ``predict`` is called without one
        use_dim: Observe the size components
        use_vel: Observe the velocity components
        process_noise: Q diagonal, one entry per state component
        measurement_noise: R diagonal, one entry per state component
        initial_uncertainty: Initial variance of the seeded components

    Example:
        >>> kf = KalmanFilter2D(dt=0.02)
        >>> kf.initialize([100, 100], [20, 20])
        >>> kf.predict()
        >>> kf.correct([101, 99, 20, 21])
        >>> state = kf.get_state()
    """

    dim_x: int = 0
    position_indices: Tuple[int, ...] = ()
    velocity_indices: Tuple[int, ...] = ()
    size_indices: Tuple[int, ...] = ()
    default_process_noise: Tuple[float, ...] = ()
    default_measurement_noise: Tuple[float, ...] = ()

    def __init__(
        self,
        dt: float = 0.02,
        use_dim: bool = True,
        use_vel: bool = False,
        process_noise: Optional[Sequence[float]] = None,
        measurement_noise: Optional[Sequence[float]] = None,
        initial_uncertainty: float = 10.0
    ):
        if dt <= 0:
            raise ConfigurationError(f"dt must be positive, got {dt}")
        if initial_uncertainty <= 0:
            raise ConfigurationError("initial_uncertainty must be positive")

        self._dt = float(dt)
        self._initial_uncertainty = float(initial_uncertainty)
        self._q = self._noise_vector(
            process_noise, self.default_process_noise, "process_noise")
        self._r = self._noise_vector(
            measurement_noise, self.default_measurement_noise,
            "measurement_noise")

        self._use_dim = use_dim
        self._use_vel = use_vel
        self._observed: Tuple[int, ...] = ()
        self._H = np.zeros((0, self.dim_x))
        self._R = np.zeros((0, 0))

        self._kf = self._create_filter()
        self._kf.Q = np.diag(self._q)
        self.configure_observation(use_dim, use_vel)

        self._initialized = False
        self._diverged = False

    def _noise_vector(
        self,
        values: Optional[Sequence[float]],
        default: Sequence[float],
        name: str
    ) -> np.ndarray:
        """Validate a per-component noise vector against the state size."""
        vector = np.asarray(default if values is None else values,
                            dtype=np.float64)
        if vector.shape != (self.dim_x,):
            raise ConfigurationError(
                f"{name} must have {self.dim_x} components for "
                f"{type(self).__name__}, got {vector.size}"
            )
        return vector

    def _create_filter(self):
        """Create the underlying filterpy filter."""
        return KalmanFilter(dim_x=self.dim_x, dim_z=len(self.position_indices))

    # -------------------------------------------------------------------------
    # Observation model
    # -------------------------------------------------------------------------

    def configure_observation(self, use_dim: bool, use_vel: bool) -> None:
        """Select which state components are measured and rebuild H and R."""
        self._use_dim = use_dim
        self._use_vel = use_vel

        observed = list(self.position_indices)
        if use_vel:
            observed.extend(self.velocity_indices)
        if use_dim:
            observed.extend(self.size_indices)
        self._observed = tuple(sorted(observed))

        self._build_h()
        self._build_r()

    def _build_h(self) -> None:
        """Selection matrix picking the observed rows of the state."""
        self._H = np.eye(self.dim_x, dtype=np.float64)[list(self._observed)]
        self._kf.dim_z = len(self._observed)
        if isinstance(self._kf, KalmanFilter):
            self._kf.H = self._H

    def _build_r(self) -> None:
        """Measurement noise restricted to the observed components."""
        self._R = np.diag(self._r[list(self._observed)])
        self._kf.R = self._R

    # -------------------------------------------------------------------------
    # Transition model
    # -------------------------------------------------------------------------

    def _transition_matrix(self, dt: float) -> np.ndarray:
        """Constant-structure transition matrix for step ``dt``."""
        raise NotImplementedError

    def _update_transition(self, dt: float) -> None:
        self._kf.F = self._transition_matrix(dt)

    # -------------------------------------------------------------------------
    # Filter cycle
    # -------------------------------------------------------------------------

    def _initial_covariance(self) -> np.ndarray:
        P = np.eye(self.dim_x, dtype=np.float64) * self._initial_uncertainty
        seeded = set(self.position_indices) | set(self.size_indices)
        for i in range(self.dim_x):
            if i not in seeded:
                P[i, i] *= UNSEEN_VARIANCE_SCALE
        return P

    def initialize(
        self,
        position: Sequence[float],
        size: Sequence[float]
    ) -> None:
        """
        Seed the state from a first observation.

        Velocity-like components start at zero and the covariance is reset
        to the configured initial uncertainty.

        Args:
            position: Observed position, one value per position component
            size: Observed size, one value per size component
        """
        position = np.asarray(position, dtype=np.float64).ravel()
        size = np.asarray(size, dtype=np.float64).ravel()
        if position.size != len(self.position_indices):
            raise ValueError(
                f"Expected {len(self.position_indices)} position components, "
                f"got {position.size}"
            )
        if size.size < len(self.size_indices):
            raise ValueError(
                f"Expected {len(self.size_indices)} size components, "
                f"got {size.size}"
            )

        x = np.zeros((self.dim_x, 1), dtype=np.float64)
        x[list(self.position_indices), 0] = position
        x[list(self.size_indices), 0] = size[:len(self.size_indices)]

        self._kf.x = x
        self._kf.P = self._initial_covariance()
        self._initialized = True
        self._diverged = False
        self._check_health()

    def predict(self, dt: Optional[float] = None) -> np.ndarray:
        """
        Propagate the state and covariance by one time step.

        Args:
            dt: Time step in seconds. Uses the default dt if None.

        Returns:
            Predicted state vector
        """
        self._require_initialized()
        dt = self._dt if dt is None else float(dt)
        if dt <= 0:
            raise ValueError(f"dt must be positive, got {dt}")

        self._update_transition(dt)
        self._kf.predict()
        self._after_step()
        self._check_health()
        return self.get_state()

    def correct(self, measurement: Sequence[float]) -> bool:
        """
        Fuse a measurement of the observed components into the state.

        Args:
            measurement: Observed components in state order

        Returns:
            True if the filter is still healthy after the correction
        """
        self._require_initialized()
        z = np.asarray(measurement, dtype=np.float64).reshape(-1, 1)
        if z.shape[0] != self.dim_z:
            raise ValueError(
                f"Measurement has {z.shape[0]} components, the observation "
                f"model expects {self.dim_z}"
            )

        try:
            self._update(z)
        except (np.linalg.LinAlgError, ValueError) as e:
            logger.warning(f"Kalman correction failed: {e}")
            self._diverged = True
            return False

        self._after_step()
        self._check_health()
        return not self._diverged

    def _update(self, z: np.ndarray) -> None:
        self._kf.update(z)

    def _after_step(self) -> None:
        """Hook for state normalization after predict/correct."""

    def reset_filter(self, measurement: Sequence[float]) -> None:
        """
        Re-seed the filter from a measurement without changing identity.

        Components that are not part of the measurement (for instance the
        size when ``use_dim`` is off) keep their current estimate.

        Args:
            measurement: Observed components in state order
        """
        z = np.asarray(measurement, dtype=np.float64).ravel()
        if z.size != self.dim_z:
            raise ValueError(
                f"Measurement has {z.size} components, the observation "
                f"model expects {self.dim_z}"
            )

        previous = self.get_state() if self._initialized else np.zeros(self.dim_x)
        full = previous.copy()
        full[list(self._observed)] = z

        self.initialize(
            full[list(self.position_indices)],
            full[list(self.size_indices)]
        )
        if self._use_vel and self.velocity_indices:
            self._kf.x[list(self.velocity_indices), 0] = \
                full[list(self.velocity_indices)]

    def _check_health(self) -> None:
        """Flag the filter as diverged on non-finite or non-PSD covariance."""
        x, P = self._kf.x, self._kf.P
        if not (np.all(np.isfinite(x)) and np.all(np.isfinite(P))):
            self._diverged = True
            return

        P = 0.5 * (P + P.T)
        self._kf.P = P
        scale = max(1.0, float(np.max(np.abs(np.diag(P)))))
        if np.min(np.linalg.eigvalsh(P)) < -PSD_TOLERANCE * scale:
            self._diverged = True

    def _require_initialized(self) -> None:
        if not self._initialized:
            raise RuntimeError(
                f"{type(self).__name__} used before initialize()")

    # -------------------------------------------------------------------------
    # Accessors
    # -------------------------------------------------------------------------

    def get_state(self) -> np.ndarray:
        """Copy of the state vector."""
        return self._kf.x[:, 0].copy()

    def get_uncertainty(self) -> np.ndarray:
        """Copy of the state covariance matrix."""
        return self._kf.P.copy()

    def measurement_from(
        self,
        position: Sequence[float],
        size: Sequence[float],
        velocity: Optional[Sequence[float]] = None
    ) -> np.ndarray:
        """
        Assemble a measurement vector in the current observation layout.

        Args:
            position: Observed position
            size: Observed size (extra trailing components are ignored)
            velocity: Observed velocity, required when ``use_vel`` is on

        Returns:
            Measurement vector of length ``dim_z``
        """
        full = np.zeros(self.dim_x, dtype=np.float64)
        full[list(self.position_indices)] = np.asarray(position, dtype=np.float64)
        if self.size_indices:
            size = np.asarray(size, dtype=np.float64).ravel()
            full[list(self.size_indices)] = size[:len(self.size_indices)]
        if self._use_vel and self.velocity_indices:
            if velocity is None:
                raise ValueError("Velocity is observed but none was given")
            full[list(self.velocity_indices)] = np.asarray(
                velocity, dtype=np.float64)
        return full[list(self._observed)]

    @property
    def dt(self) -> float:
        return self._dt

    @property
    def dim_z(self) -> int:
        """Number of observed components."""
        return len(self._observed)

    @property
    def observed_indices(self) -> Tuple[int, ...]:
        return self._observed

    @property
    def use_dim(self) -> bool:
        return self._use_dim

    @property
    def use_vel(self) -> bool:
        return self._use_vel

    @property
    def initialized(self) -> bool:
        return self._initialized

    @property
    def diverged(self) -> bool:
        """True once the covariance or state can no longer be trusted."""
        return self._diverged

    @property
    def position(self) -> np.ndarray:
        return self._kf.x[list(self.position_indices), 0].copy()

    @property
    def velocity(self) -> np.ndarray:
        return self._kf.x[list(self.velocity_indices), 0].copy()

    @property
    def size(self) -> np.ndarray:
        return self._kf.x[list(self.size_indices), 0].copy()


class _NonlinearTransitionEKF(ExtendedKalmanFilter):
    """ExtendedKalmanFilter whose state prediction is a nonlinear function."""

    def __init__(self, dim_x: int, dim_z: int, fx):
        super().__init__(dim_x=dim_x, dim_z=dim_z)
        self._fx = fx
        self.dt = 0.0

    def predict_x(self, u=0):
        self.x = self._fx(self.x, self.dt)


class BaseExtendedKalmanFilter(BaseKalmanFilter):
    """
    Extended Kalman filter with a nonlinear transition and linear observation.

    ``F`` holds the Jacobian of the transition, evaluated at the current
    state before every prediction. Subclasses implement
    ``_transition_function`` and ``_transition_jacobian``.
    """

    def _create_filter(self) -> _NonlinearTransitionEKF:
        return _NonlinearTransitionEKF(
            dim_x=self.dim_x,
            dim_z=len(self.position_indices),
            fx=self._transition_function
        )

    def _transition_function(self, x: np.ndarray, dt: float) -> np.ndarray:
        raise NotImplementedError

    def _transition_jacobian(self, x: np.ndarray, dt: float) -> np.ndarray:
        raise NotImplementedError

    def _update_transition(self, dt: float) -> None:
        self._kf.F = self._transition_jacobian(self._kf.x, dt)
        self._kf.dt = dt

    def _update(self, z: np.ndarray) -> None:
        H = self._H
        self._kf.update(
            z,
            HJacobian=lambda x: H,
            Hx=lambda x: H @ x,
            R=self._R
        )
