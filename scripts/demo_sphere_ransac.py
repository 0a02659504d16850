import numpy as np

from robustfit.estimators import create_sphere_estimator


class PrintListener:
    def on_estimate_start(self, estimator) -> None:
        print(f"[{estimator.method}] start: {estimator.num_samples} points")

    def on_estimate_next_iteration(self, estimator, iteration: int) -> None:
        pass

    def on_estimate_progress_change(self, estimator, progress: float) -> None:
        print(f"[{estimator.method}] progress: {progress:.0%}")

    def on_estimate_end(self, estimator) -> None:
        print(f"[{estimator.method}] done after {estimator.iterations} iterations")


def main() -> None:
    rng = np.random.default_rng(0)

    # True sphere
    center_true = np.array([12.0, -4.0, 30.0])
    radius_true = 25.0

    # Generate inlier points uniformly on the sphere
    n_in = 400
    dirs = rng.normal(size=(n_in, 3))
    dirs /= np.linalg.norm(dirs, axis=1, keepdims=True)
    pts = center_true + radius_true * dirs

    # Add Gaussian noise (measurement noise)
    pts += rng.normal(0.0, 0.01, size=pts.shape)

    # Add outliers (gross errors)
    n_out = 100
    err = rng.normal(0.0, 20.0, size=(n_out, 3))
    pts[:n_out] += err

    # Quality: outliers with a large error get a low score
    scores = np.ones((n_in,))
    scores[:n_out] = 1.0 / (1.0 + np.linalg.norm(err, axis=1))

    for method in ("ransac", "msac", "prosac", "lmeds", "promeds"):
        est = create_sphere_estimator(
            pts, scores,
            method=method,
            listener=PrintListener(),
            threshold=0.05,
            stop_threshold=0.01,
            progress_delta=0.25,
            keep_covariance=True,
            compute_and_keep_inliers=True,
        )
        sphere = est.estimate()

        print("center_est:", sphere.center, "radius_est:", sphere.radius)
        print("num_inliers:", est.inliers_data.num_inliers, "/", pts.shape[0])
        if est.covariance is not None:
            print("radius std:", float(np.sqrt(est.covariance[3, 3])))
        print()

    print("center_true:", center_true, "radius_true:", radius_true)


if __name__ == "__main__":
    main()
