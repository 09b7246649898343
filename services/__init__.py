"""
PotionPlay Services Package

Hardware-facing services used by the interaction core.

Equipment
---------
- services.camera: Webcam still capture (OpenCV)
"""
