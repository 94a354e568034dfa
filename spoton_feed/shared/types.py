"""
Module for shared type aliases used across the feed pipeline.
"""
from typing import NewType

CameraID = NewType("CameraID", str)
GlobalID = NewType("GlobalID", str) # Re-identified person ID, stable across cameras/frames
PersonColor = NewType("PersonColor", str) # Hex color string, e.g. '#FF6B6B'
