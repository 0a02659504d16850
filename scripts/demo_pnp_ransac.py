import numpy as np

from robustfit.camera import PinholeCamera, EPnPFitter, intrinsic_matrix
from robustfit.ransac.core import ransac


def main() -> None:
    rng = np.random.default_rng(0)

    # True camera
    K = intrinsic_matrix(fx=800.0, fy=800.0, cx=320.0, cy=240.0)
    cam_true = PinholeCamera(
        intrinsics=K,
        rvec=np.array([0.1, -0.2, 0.05]),
        tvec=np.array([0.3, -0.1, 6.0]),
    )

    # Generate inlier correspondences
    n_in = 200
    pts3d = rng.uniform(-1.0, 1.0, size=(n_in, 3))
    pts2d = cam_true.project(pts3d)

    # Add Gaussian noise (pixel noise)
    pts2d += rng.normal(0.0, 0.5, size=pts2d.shape)

    # Add outliers (wrong matches)
    n_out = 80
    o3 = rng.uniform(-1.0, 1.0, size=(n_out, 3))
    o2 = rng.uniform([0, 0], [640, 480], size=(n_out, 2))

    pts3d_all = np.vstack([pts3d, o3])
    pts2d_all = np.vstack([pts2d, o2])

    # Run RANSAC with full (Levenberg-Marquardt) refinement
    res = ransac(
        EPnPFitter(K),
        pts3d_all,
        pts2d_all,
        tau=2.0,
        max_iters=2000,
        seed=42,
        fast_refinement=False,
    )

    print("rvec_true:", cam_true.rvec, "tvec_true:", cam_true.tvec)
    if res is None:
        print("RANSAC failed.")
        return

    print("rvec_est:", res.model.rvec, "tvec_est:", res.model.tvec)
    print("num_inliers:", res.num_inliers, "/", pts3d_all.shape[0])
    print("rms_error:", res.rms_error)
    print("iterations:", res.iterations)
    if res.covariance is not None:
        print("pose std:", np.sqrt(np.diag(res.covariance)))


if __name__ == "__main__":
    main()
