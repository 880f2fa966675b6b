"""Laser-spot detection, YOLOv5 output decoding, target tracking and training-data helpers."""

__version__ = "0.1.0"