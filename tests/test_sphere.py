import numpy as np
import pytest

from robustfit.estimators import create_sphere_estimator
from robustfit.ransac import ROBUST_METHODS
from robustfit.sphere import (
    Sphere,
    SphereFitter,
    fit_sphere_least_squares,
    fit_sphere_minimal,
    sphere_residuals,
)

CENTER = np.array([1.0, 2.0, 3.0])
RADIUS = 10.0


# ---------- Sphere model ----------
def test_sphere_distances():
    s = Sphere(center=[0.0, 0.0, 0.0], radius=2.0)
    pts = np.array([[2.0, 0.0, 0.0], [0.0, 3.0, 0.0], [0.0, 0.0, 0.5]])
    np.testing.assert_allclose(s.signed_distance(pts), [0.0, 1.0, -1.5])
    np.testing.assert_allclose(sphere_residuals(s, pts), [0.0, 1.0, 1.5])
    assert s.is_locus(np.array([0.0, -2.0, 0.0]))
    assert not s.is_locus(np.array([0.0, -2.1, 0.0]))


@pytest.mark.parametrize("center, radius", [
    ([0.0, 0.0], 1.0),
    ([0.0, 0.0, 0.0], -1.0),
    ([0.0, np.nan, 0.0], 1.0),
    ([0.0, 0.0, 0.0], np.inf),
])
def test_invalid_sphere(center, radius):
    with pytest.raises(ValueError):
        Sphere(center=center, radius=radius)


# ---------- Minimal / least-squares fits ----------
def test_minimal_fit_recovers_sphere():
    pts = CENTER + RADIUS * np.array([
        [1.0, 0.0, 0.0],
        [0.0, 1.0, 0.0],
        [0.0, 0.0, 1.0],
        [-1.0, 0.0, 0.0],
    ])
    s = fit_sphere_minimal(pts)
    assert s is not None
    np.testing.assert_allclose(s.center, CENTER, atol=1e-9)
    assert s.radius == pytest.approx(RADIUS)


def test_minimal_fit_far_from_origin():
    center = np.array([1e4, -2e4, 5e3])
    pts = center + 0.5 * np.array([
        [1.0, 0.0, 0.0],
        [0.0, 1.0, 0.0],
        [0.0, 0.0, 1.0],
        [0.0, -1.0, 0.0],
    ])
    s = fit_sphere_minimal(pts)
    np.testing.assert_allclose(s.center, center, atol=1e-6)
    assert s.radius == pytest.approx(0.5, abs=1e-6)


def test_minimal_fit_rejects_coplanar_points():
    pts = np.array([
        [1.0, 0.0, 0.0],
        [0.0, 1.0, 0.0],
        [-1.0, 0.0, 0.0],
        [0.0, -1.0, 0.0],
    ])
    assert fit_sphere_minimal(pts) is None


def test_minimal_fit_rejects_coincident_points():
    assert fit_sphere_minimal(np.ones((4, 3))) is None


def test_minimal_fit_checks_shape():
    with pytest.raises(ValueError):
        fit_sphere_minimal(np.zeros((5, 3)))


def test_least_squares_fit(sphere_points):
    points, _, _, _ = sphere_points(n=200, center=CENTER, radius=RADIUS, noise_std=0.01, seed=1)
    s = fit_sphere_least_squares(points)
    np.testing.assert_allclose(s.center, CENTER, atol=0.01)
    assert s.radius == pytest.approx(RADIUS, abs=0.01)


def test_least_squares_fit_degenerate():
    assert fit_sphere_least_squares(np.array([[0.0, 0.0, 0.0], [1.0, 0.0, 0.0], [0.0, 1.0, 0.0]])) is None

    t = np.linspace(0.0, 2.0 * np.pi, 20, endpoint=False)
    circle = np.stack([np.cos(t), np.sin(t), np.zeros_like(t)], axis=1)
    assert fit_sphere_least_squares(circle) is None


def test_fitter_parameters():
    fitter = SphereFitter()
    s = Sphere(center=CENTER, radius=RADIUS)
    params = fitter.to_params(s)
    np.testing.assert_allclose(params, [1.0, 2.0, 3.0, 10.0])

    back = fitter.from_params(np.array([1.0, 2.0, 3.0, -10.0]))
    assert back.radius == 10.0


# ---------- Robust estimation ----------
@pytest.mark.parametrize("method", ROBUST_METHODS)
def test_perfect_data_all_methods(sphere_points, method):
    points, _, _, scores = sphere_points(n=100, center=CENTER, radius=RADIUS)
    est = create_sphere_estimator(points, scores, method=method, compute_and_keep_inliers=True)
    s = est.estimate()

    np.testing.assert_allclose(s.center, CENTER, atol=1e-5)
    assert s.radius == pytest.approx(RADIUS, abs=1e-5)
    assert est.inliers_data.num_inliers == 100
    assert est.inliers_data.inliers.all()


@pytest.mark.parametrize("method", ROBUST_METHODS)
def test_outliers_are_rejected(sphere_points, method):
    points, _, outliers, scores = sphere_points(
        n=100, center=CENTER, radius=RADIUS, outlier_ratio=0.2, seed=2)
    est = create_sphere_estimator(points, scores, method=method, compute_and_keep_inliers=True)
    s = est.estimate()

    np.testing.assert_allclose(s.center, CENTER, atol=1e-5)
    assert s.radius == pytest.approx(RADIUS, abs=1e-5)
    np.testing.assert_array_equal(est.inliers_data.inliers, ~outliers)


def test_prosac_over_many_runs(sphere_points):
    failures = 0
    for seed in range(10):
        points, _, _, scores = sphere_points(
            n=100, center=CENTER, radius=RADIUS, outlier_ratio=0.2, seed=seed)
        est = create_sphere_estimator(points, scores, method="prosac", seed=seed)
        s = est.estimate()
        if np.linalg.norm(s.center - CENTER) > 5e-4 or abs(s.radius - RADIUS) > 5e-4:
            failures += 1
    assert failures < 5


def test_prosac_needs_few_iterations_with_good_scores(sphere_points):
    points, _, _, scores = sphere_points(n=200, center=CENTER, radius=RADIUS, outlier_ratio=0.5, seed=7)
    prosac = create_sphere_estimator(points, scores, method="prosac")
    ransac = create_sphere_estimator(points, scores, method="ransac")
    prosac.estimate()
    ransac.estimate()
    assert prosac.iterations <= ransac.iterations


def test_noisy_data_with_threshold(sphere_points):
    points, _, outliers, _ = sphere_points(
        n=300, center=CENTER, radius=RADIUS, outlier_ratio=0.3, noise_std=0.005, seed=8)
    est = create_sphere_estimator(points, threshold=0.05, compute_and_keep_inliers=True)
    s = est.estimate()

    np.testing.assert_allclose(s.center, CENTER, atol=0.01)
    assert s.radius == pytest.approx(RADIUS, abs=0.01)
    assert est.inliers_data.num_inliers >= 0.9 * np.count_nonzero(~outliers)


def test_refinement_toggle_keeps_inliers(sphere_points):
    points, *_ = sphere_points(n=150, center=CENTER, radius=RADIUS, outlier_ratio=0.2,
                               noise_std=0.01, seed=9)
    raw = create_sphere_estimator(points, threshold=0.05, refine_result=False,
                                  keep_covariance=True, compute_and_keep_inliers=True)
    refined = create_sphere_estimator(points, threshold=0.05, refine_result=True,
                                      keep_covariance=True, compute_and_keep_inliers=True)
    raw_sphere = raw.estimate()
    refined_sphere = refined.estimate()

    # refinement never changes the inlier classification
    np.testing.assert_array_equal(raw.inliers_data.inliers, refined.inliers_data.inliers)
    assert raw.covariance is None
    assert refined.covariance.shape == (4, 4)
    assert np.all(np.diag(refined.covariance) > 0.0)

    inliers = refined.inliers_data.inliers
    raw_cost = np.sum(raw_sphere.distance(points[inliers]) ** 2)
    refined_cost = np.sum(refined_sphere.distance(points[inliers]) ** 2)
    assert refined_cost <= raw_cost


def test_fast_refinement_has_no_covariance(sphere_points):
    points, *_ = sphere_points(n=80, center=CENTER, radius=RADIUS, noise_std=0.01, seed=10)
    est = create_sphere_estimator(points, threshold=0.05, use_fast_refinement=True, keep_covariance=True)
    s = est.estimate()
    assert s.radius == pytest.approx(RADIUS, abs=0.01)
    assert est.covariance is None


def test_prosac_with_uninformative_scores_and_bad_leading_points(sphere_points):
    points, _, outliers, _ = sphere_points(n=100, outlier_ratio=0.4, seed=11)
    # equal scores keep the input order: every outlier is ranked ahead of every inlier
    order = np.argsort(~outliers, kind="stable")
    points, outliers = points[order], outliers[order]
    assert outliers[:40].all()

    est = create_sphere_estimator(points, np.ones(100), method="prosac", max_iterations=3000,
                                  compute_and_keep_inliers=True)
    s = est.estimate()

    np.testing.assert_allclose(s.center, [0.0, 0.0, 0.0], atol=1e-5)
    assert s.radius == pytest.approx(10.0, abs=1e-5)
    np.testing.assert_array_equal(est.inliers_data.inliers, ~outliers)
