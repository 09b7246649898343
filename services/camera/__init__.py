"""
PotionPlay Camera Services
Webcam still capture
"""

from .webcam import WebcamFrameSource

__all__ = ["WebcamFrameSource"]
