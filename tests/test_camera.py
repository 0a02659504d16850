import numpy as np
import pytest

from robustfit.camera import (
    EPnPFitter,
    PinholeCamera,
    fit_pose_epnp,
    intrinsic_matrix,
    is_valid_intrinsics,
    reprojection_errors,
    reprojection_residuals,
)
from robustfit.estimators import create_pinhole_camera_estimator
from robustfit.ransac.core import ransac


# ---------- Camera model ----------
def test_intrinsic_matrix_layout():
    K = intrinsic_matrix(fx=500.0, fy=400.0, cx=320.0, cy=240.0, skew=1.5)
    np.testing.assert_array_equal(K, [[500.0, 1.5, 320.0], [0.0, 400.0, 240.0], [0.0, 0.0, 1.0]])
    assert is_valid_intrinsics(K)


@pytest.mark.parametrize("K", [
    np.eye(2),
    intrinsic_matrix(fx=0.0, fy=800.0, cx=320.0, cy=240.0),
    np.array([[800.0, 0.0, 320.0], [1.0, 800.0, 240.0], [0.0, 0.0, 1.0]]),
    np.full((3, 3), np.nan),
])
def test_invalid_intrinsics_are_rejected(K):
    assert not is_valid_intrinsics(K)
    with pytest.raises(ValueError):
        EPnPFitter(K)
    with pytest.raises(ValueError):
        PinholeCamera(intrinsics=K, rvec=np.zeros(3), tvec=np.zeros(3))


def test_pose_vectors_must_have_three_components(intrinsics):
    with pytest.raises(ValueError):
        PinholeCamera(intrinsics=intrinsics, rvec=np.zeros(4), tvec=np.zeros(3))


def test_projection_matches_projection_matrix(camera):
    pts = np.array([[0.0, 0.0, 0.0], [0.5, -0.3, 0.8], [-1.0, 1.0, -1.0]])
    uvw = np.hstack([pts, np.ones((3, 1))]) @ camera.matrix.T
    np.testing.assert_allclose(camera.project(pts), uvw[:, :2] / uvw[:, 2:], rtol=1e-12)


def test_identity_camera_projects_principal_point(intrinsics):
    cam = PinholeCamera(intrinsics=intrinsics, rvec=np.zeros(3), tvec=np.zeros(3))
    np.testing.assert_allclose(cam.project(np.array([[0.0, 0.0, 5.0]])), [[320.0, 240.0]])
    np.testing.assert_allclose(cam.center, np.zeros(3))


def test_points_behind_camera_project_to_inf(camera):
    pts = np.array([[0.0, 0.0, -20.0], [0.0, 0.0, 0.0]])
    out = camera.project(pts)
    assert np.isinf(out[0]).all()
    assert np.isfinite(out[1]).all()

    residuals = reprojection_residuals(camera, pts, np.zeros((2, 2)))
    assert np.isinf(residuals[0]) and np.isfinite(residuals[1])


def test_camera_center(camera):
    # the center maps to the origin of the camera frame
    np.testing.assert_allclose(camera.rotation @ camera.center + camera.tvec, np.zeros(3), atol=1e-12)


def test_reprojection_error_layout(camera):
    pts3d = np.array([[0.0, 0.0, 0.0], [0.2, 0.1, -0.4]])
    pts2d = camera.project(pts3d) + np.array([[1.0, -2.0], [3.0, 4.0]])
    np.testing.assert_allclose(reprojection_errors(camera, pts3d, pts2d), [-1.0, 2.0, -3.0, -4.0])
    np.testing.assert_allclose(reprojection_residuals(camera, pts3d, pts2d), [np.sqrt(5.0), 5.0])

    with pytest.raises(ValueError):
        reprojection_residuals(camera, pts3d, pts2d[:1])


# ---------- EPnP ----------
def test_epnp_exact_correspondences(camera, intrinsics, pose_correspondences):
    pts3d, pts2d, _, _ = pose_correspondences(n=50)
    est = fit_pose_epnp(pts3d, pts2d, intrinsics)
    assert est is not None
    np.testing.assert_allclose(est.rvec, camera.rvec, atol=1e-5)
    np.testing.assert_allclose(est.tvec, camera.tvec, atol=1e-5)


def test_epnp_minimal_sample(camera, intrinsics, pose_correspondences):
    pts3d, pts2d, _, _ = pose_correspondences(n=6, seed=1)
    est = EPnPFitter(intrinsics).fit_minimal(pts3d, pts2d)
    assert est is not None
    assert reprojection_residuals(est, pts3d, pts2d).max() < 1e-3


def test_epnp_needs_four_points(intrinsics, pose_correspondences):
    pts3d, pts2d, _, _ = pose_correspondences(n=3)
    assert fit_pose_epnp(pts3d, pts2d, intrinsics) is None


def test_fitter_parameters(camera, intrinsics):
    fitter = EPnPFitter(intrinsics)
    params = fitter.to_params(camera)
    assert params.shape == (6,)
    back = fitter.from_params(params)
    np.testing.assert_allclose(back.rvec, camera.rvec)
    np.testing.assert_allclose(back.tvec, camera.tvec)


# ---------- Robust estimation ----------
@pytest.mark.parametrize("method", ["ransac", "msac", "lmeds"])
def test_robust_pose_with_outliers(camera, intrinsics, pose_correspondences, method):
    pts3d, pts2d, outliers, _ = pose_correspondences(n=100, outlier_ratio=0.3, seed=2)
    est = create_pinhole_camera_estimator(
        pts3d, pts2d,
        intrinsics=intrinsics,
        method=method,
        keep_covariance=True,
        compute_and_keep_inliers=True,
    )
    cam = est.estimate()

    np.testing.assert_allclose(cam.rvec, camera.rvec, atol=1e-4)
    np.testing.assert_allclose(cam.tvec, camera.tvec, atol=1e-3)

    inliers = est.inliers_data.inliers
    assert inliers[~outliers].all()
    assert np.count_nonzero(inliers & outliers) <= 1

    assert est.covariance is not None
    assert est.covariance.shape == (6, 6)
    np.testing.assert_allclose(est.covariance, est.covariance.T, atol=1e-12)


@pytest.mark.parametrize("method", ["prosac", "promeds"])
def test_robust_pose_with_quality_scores(camera, intrinsics, pose_correspondences, method):
    pts3d, pts2d, outliers, scores = pose_correspondences(n=100, outlier_ratio=0.4, seed=3)
    est = create_pinhole_camera_estimator(
        pts3d, pts2d, scores,
        intrinsics=intrinsics,
        method=method,
        compute_and_keep_inliers=True,
    )
    cam = est.estimate()

    np.testing.assert_allclose(cam.rvec, camera.rvec, atol=1e-4)
    np.testing.assert_allclose(cam.tvec, camera.tvec, atol=1e-3)
    assert est.inliers_data.inliers[~outliers].all()


def test_noisy_pose(camera, intrinsics, pose_correspondences):
    pts3d, pts2d, outliers, _ = pose_correspondences(n=200, outlier_ratio=0.25, seed=4)
    rng = np.random.default_rng(4)
    pts2d = pts2d + rng.normal(0.0, 0.3, size=pts2d.shape)

    est = create_pinhole_camera_estimator(pts3d, pts2d, intrinsics=intrinsics, threshold=2.0)
    cam = est.estimate()
    np.testing.assert_allclose(cam.tvec, camera.tvec, atol=0.05)


def test_factory_needs_both_point_sets(intrinsics, pose_correspondences):
    pts3d, pts2d, _, _ = pose_correspondences(n=20)
    with pytest.raises(ValueError):
        create_pinhole_camera_estimator(pts3d, intrinsics=intrinsics)

    est = create_pinhole_camera_estimator(intrinsics=intrinsics)
    assert not est.is_ready
    est.set_data(pts3d, pts2d)
    assert est.is_ready
    assert est.min_samples == 6

    with pytest.raises(ValueError):
        est.set_data(pts3d, pts2d[:-1])


def test_ransac_function_for_pose(camera, intrinsics, pose_correspondences):
    pts3d, pts2d, outliers, _ = pose_correspondences(n=120, outlier_ratio=0.3, seed=5)
    res = ransac(EPnPFitter(intrinsics), pts3d, pts2d, tau=1.0, seed=5, fast_refinement=False)

    assert res is not None
    np.testing.assert_allclose(res.model.tvec, camera.tvec, atol=1e-3)
    assert res.inliers[~outliers].all()
    assert res.rms_error < 1e-3
    assert res.covariance.shape == (6, 6)
