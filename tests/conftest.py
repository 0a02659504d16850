import numpy as np
import pytest

from robustfit.camera import PinholeCamera, intrinsic_matrix


def _points_on_sphere(rng, n, center, radius):
    dirs = rng.normal(size=(n, 3))
    dirs /= np.linalg.norm(dirs, axis=1, keepdims=True)
    return np.asarray(center, dtype=np.float64) + radius * dirs


@pytest.fixture
def sphere_points():
    """
    Factory: points on a sphere, a fraction of them displaced by large Gaussian errors.

    Returns (points, clean_points, outlier_mask, quality_scores).
    Quality scores are 1 for inliers and 1 / (1 + error) for outliers.
    """

    def make(n=100, center=(0.0, 0.0, 0.0), radius=10.0, outlier_ratio=0.0,
             outlier_std=100.0, noise_std=0.0, seed=0):
        rng = np.random.default_rng(seed)
        clean = _points_on_sphere(rng, n, center, radius)
        points = clean.copy()
        if noise_std > 0.0:
            points += rng.normal(0.0, noise_std, size=points.shape)

        outliers = np.zeros((n,), dtype=bool)
        outliers[rng.permutation(n)[:int(round(outlier_ratio * n))]] = True
        errors = rng.normal(0.0, outlier_std, size=(int(outliers.sum()), 3))
        points[outliers] += errors

        scores = np.ones((n,), dtype=np.float64)
        scores[outliers] = 1.0 / (1.0 + np.linalg.norm(errors, axis=1))
        return points, clean, outliers, scores

    return make


@pytest.fixture
def intrinsics():
    return intrinsic_matrix(fx=800.0, fy=800.0, cx=320.0, cy=240.0)


@pytest.fixture
def camera(intrinsics):
    return PinholeCamera(
        intrinsics=intrinsics,
        rvec=np.array([0.1, -0.2, 0.05]),
        tvec=np.array([0.3, -0.1, 6.0]),
    )


@pytest.fixture
def pose_correspondences(camera):
    """
    Factory: exact 3D-2D correspondences for `camera`, a fraction replaced by random pixels.

    Returns (points3d, points2d, outlier_mask, quality_scores).
    """

    def make(n=100, outlier_ratio=0.0, seed=0):
        rng = np.random.default_rng(seed)
        pts3d = rng.uniform(-1.0, 1.0, size=(n, 3))
        pts2d = camera.project(pts3d)

        outliers = np.zeros((n,), dtype=bool)
        outliers[rng.permutation(n)[:int(round(outlier_ratio * n))]] = True
        pts2d[outliers] = rng.uniform([0.0, 0.0], [640.0, 480.0], size=(int(outliers.sum()), 2))

        scores = np.where(outliers, rng.uniform(0.0, 0.5, size=n), rng.uniform(0.5, 1.0, size=n))
        return pts3d, pts2d, outliers, scores

    return make


class RecordingListener:
    """
    Records every notification, in order, as (event, value) tuples.
    """

    def __init__(self):
        self.events = []

    def on_estimate_start(self, estimator):
        self.events.append(("start", None))

    def on_estimate_next_iteration(self, estimator, iteration):
        self.events.append(("iteration", iteration))

    def on_estimate_progress_change(self, estimator, progress):
        self.events.append(("progress", progress))

    def on_estimate_end(self, estimator):
        self.events.append(("end", None))

    def of(self, kind):
        return [v for e, v in self.events if e == kind]


@pytest.fixture
def recording_listener():
    return RecordingListener()
