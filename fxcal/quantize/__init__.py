from .errors import ConfigurationError, StructuralMismatchError
from .fixed_point import FixedPointEncoding, quantize, dequantize, extract_value_and_shift

__all__ = [
    "ConfigurationError",
    "StructuralMismatchError",
    "FixedPointEncoding",
    "quantize",
    "dequantize",
    "extract_value_and_shift",
]
