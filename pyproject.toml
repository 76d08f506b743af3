[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "stbrecon"
version = "0.1.0"
description = "Sparse template-based monocular reconstruction of deformable surfaces from tracked mesh observations"
requires-python = ">=3.10"
keywords = [
    "reconstruction",
    "shape-from-template",
    "optical-flow",
    "lucas-kanade",
    "mesh",
    "gauss-newton",
    "computer-vision",
]
classifiers = [
    "Development Status :: 3 - Alpha",
    "Intended Audience :: Science/Research",
    "Operating System :: OS Independent",
    "Programming Language :: Python :: 3",
    "Programming Language :: Python :: 3 :: Only",
    "Programming Language :: Python :: 3.10",
    "Programming Language :: Python :: 3.11",
    "Programming Language :: Python :: 3.12",
    "Programming Language :: Python :: 3.13",
    "Topic :: Scientific/Engineering :: Image Processing",
    "Typing :: Typed",
]
dependencies = [
    "numpy",
    "scipy",
    "pyyaml",
]

[project.optional-dependencies]
test = [
    "pytest",
]

[tool.hatch.build.targets.wheel]
packages = ["stbrecon"]

[tool.pytest.ini_options]
testpaths = ["tests"]
addopts = "-ra"
