from .calib import CalibConfig

__all__ = ["CalibConfig"]
