# stbrecon

Sparse template-based reconstruction of a deforming surface seen by a single
camera. You start with a triangle mesh of the surface in its reference shape
and an image of it in that shape. Points on the mesh are projected into the
reference image. Pyramidal Lucas–Kanade optical flow then tracks them into
each new frame. From the tracked pixels, a Gauss–Newton solver recovers the
deformed mesh while keeping the template's edge lengths as close to the
reference as it can.

## Installation

```
pip install .
```

To run the tests:

```
pip install ".[test]"
pytest
```

## Configuration

Settings come from a YAML file. `stbrecon.camera.load_config` reads it into a
dictionary and raises `ValueError` if the top level is not a mapping. These
sections are used:

- `Image`: `fx`, `fy`, `cx`, `cy` (read by `Intrinsics.from_config`)
- `Preprocessing`: `brightness_threshold`, `create_mask`, `width_min`,
  `width_max`, `height_min`, `height_max`
- `Kanade`: `iteration` (the highest pyramid level), `width` and `height`
  (the tracking window)
- `Optimizer`: `max_iteration`
- `System`: `optimization_algorithm` and `verbose`

`optimization_algorithm` selects the solver:

- `0` (`OptimizationAlgorithm.DISTANCE_ONLY`) fixes each observed vertex on
  the viewing ray through its tracked pixel and optimises only its distance
  from the camera, using edge-length terms.
- `1` (`OptimizationAlgorithm.CARTESIAN`) optimises full 3D vertex positions,
  using both reprojection terms and edge-length terms.

## Usage

Images are NumPy arrays in BGR channel order, or grey.

```python
import numpy as np

from stbrecon.camera import load_config
from stbrecon.mesh_map import MeshMap
from stbrecon.store import FrameStore
from stbrecon.tracking import Tracker

config = load_config("config.yaml")
vertices = np.loadtxt("template_vertices.txt")           # (N, 3)
triangles = np.loadtxt("template_faces.txt", dtype=int)  # (M, 3)

tracker = Tracker(reference_image, vertices, triangles, config)
mesh = MeshMap.from_config(vertices, triangles, config)
mesh.set_tracking(tracker)
store = FrameStore()

for frame in frames:
    tracker.track(frame)
    store.vertices = mesh.optimize()
    store.texture = frame
```

### Tracking

`stbrecon.tracking.Tracker` builds its observations from the reference image.
The steps are:

1. `brightness_mask` marks pixels whose HSV value (the largest of the B, G and
   R channels) is above `brightness_threshold` with 255. All other pixels get 0.
2. `usable_vertices` keeps the vertices that project inside the configured
   window and onto a masked pixel. If `create_mask` is false, every vertex is
   kept.
3. `usable_triangles` keeps the triangles whose three corners are all usable.
4. `initial_observations` projects samples of each usable triangle: the
   centroid weights `(0.3333, 0.3333, 0.3334)` and each of the three corners.
   A corner is sampled only the first time its vertex is met.

Each sample is an `stbrecon.observations.Observation` holding `face_id`, `u`,
`v`, `alpha`, `beta` and `gamma`.

- `Tracker.track(frame)` tracks the reference pixels into the frame, updates
  the observations and returns the new pixel positions.
- `Tracker.status` reports which points were tracked successfully.

### Optical flow

`stbrecon.optical_flow.pyramidal_lucas_kanade` tracks points between two grey
images. It returns three things:

- the tracked points
- a boolean status for each point
- the mean absolute intensity difference of each window

`LucasKanadeTracker` wraps it for a fixed reference frame, with a maximum of
10 iterations per level and an epsilon of 0.03.

### Optimisation

`MeshMap.optimize()` does the following:

1. Takes the current observations, either from the tracker or from
   `set_observations`.
2. Numbers the observed triangles and their vertices consecutively, using
   `stbrecon.normal_equations.local_mappings`.
3. Runs the selected optimiser and returns all vertices. Vertices that were
   not observed keep their template positions.

The two optimisers can also be used on their own. Both follow the same steps:
`set_parameters`, then `initialize`, then `run`, then `vertices()`.

- `stbrecon.optimizer_cartesian.CartesianOptimizer` starts from the template.
  After each step it flips points with negative depth to the camera side.
- `stbrecon.optimizer_distance.DepthOptimizer` keeps distances positive by
  taking their absolute value.

Both optimisers run at most `max_iteration - 1` iterations. They stop early
once the mean squared residual or the squared step drops below `1e-6`. With
`verbose`, each iteration prints its error, step size, edge error and timing.

The normal equations are assembled in `stbrecon.normal_equations.BlockSystem`,
a block-sparse symmetric matrix. It is solved with a banded Cholesky
factorisation after reverse Cuthill–McKee reordering. If the matrix is not
positive definite, it raises `NotPositiveDefiniteError`.

### Other building blocks

- `stbrecon.camera.Intrinsics` provides pinhole `project` and `back_project`,
  and conversion to and from the 3×3 `matrix()`.
- `stbrecon.geometry` provides the following:
  - `spherical_to_cartesian`, which maps `(psi, theta, d)` triples to points
  - `ray_angles`, which gives the viewing-ray angles of pixels
  - `edge_lengths` of mesh faces
- `stbrecon.residuals` provides the residuals the optimisers minimise:
  - `reprojection_residuals`
  - `distance_residuals`
  - `spherical_distance_residuals`

### Sharing results between threads

`stbrecon.store.FrameStore` holds the latest state under locks, so that
another thread can read it:

- `vertices`, `triangles`, `texture` and `ground_truth` are read and written
  as properties. Reads of the array properties return copies.
- `pause()`, `resume()` and `terminate()` set the flags, which are read
  through `paused` and `terminated`.

## What this package does not do

- It has no viewer or display: nothing draws the mesh or the tracked points.
- It has no command-line program.
- It does not read images or video. You supply frames as arrays.
- It does not compare reconstructions with ground-truth data. `FrameStore`
  can hold a ground-truth point cloud that you provide, but nothing in the
  package loads one or measures an error against it.