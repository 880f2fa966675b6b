[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "laser_guidance"
version = "0.1.0"
description = "Laser-spot detection, YOLOv5 output decoding, target tracking and training-data helpers for laser guidance."
requires-python = ">=3.10"
keywords = ["laser", "tracking", "kalman", "yolov5", "detection", "vision"]
classifiers = [
    "Development Status :: 3 - Alpha",
    "Intended Audience :: Science/Research",
    "Intended Audience :: Developers",
    "Operating System :: OS Independent",
    "Programming Language :: Python :: 3",
    "Programming Language :: Python :: 3 :: Only",
    "Programming Language :: Python :: 3.10",
    "Programming Language :: Python :: 3.11",
    "Programming Language :: Python :: 3.12",
    "Programming Language :: Python :: 3.13",
    "Topic :: Scientific/Engineering :: Image Recognition",
]
dependencies = [
    "numpy",
    "scipy",
    "pillow",
    "pyyaml",
]

[project.optional-dependencies]
test = [
    "pytest",
]

[tool.hatch.build.targets.wheel]
packages = ["laser_guidance"]

[tool.pytest.ini_options]
testpaths = ["tests"]
addopts = "-ra"
