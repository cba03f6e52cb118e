"""fxcal: post-training range calibration and fixed-point parameter encoding."""

__version__ = "0.1.0"
