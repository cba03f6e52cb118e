# fxcal/quantize/errors.py
"""
Error taxonomy for calibration and fixed-point encoding.

- ConfigurationError:       a parameter can never produce valid output
                            (bit widths, zero scale, non-finite multiplier).
- StructuralMismatchError:  the execution engine disagrees with the plan
                            (result count, element count). Retrying reproduces it.

Degenerate data (a batch made only of outliers) is not an error.
"""


class ConfigurationError(ValueError):
    """Invalid quantization / encoding parameter."""


class StructuralMismatchError(RuntimeError):
    """Engine outputs do not match what the plan declares."""


__all__ = ["ConfigurationError", "StructuralMismatchError"]
