"""UDM transformation, vendor normalization and validation for udmbridge."""

from udmbridge.conversion.normalizer import VENDOR_RULES, VendorNormalizer
from udmbridge.conversion.transformer import (
    EMRData,
    TransformOptions,
    UDMTransformer,
    transform_fhir_to_udm,
    transform_hl7_to_udm,
)
from udmbridge.conversion.validator import UDMValidator, ValidationError, ValidationResult

__all__ = [
    "VENDOR_RULES",
    "EMRData",
    "TransformOptions",
    "UDMTransformer",
    "UDMValidator",
    "ValidationError",
    "ValidationResult",
    "VendorNormalizer",
    "transform_fhir_to_udm",
    "transform_hl7_to_udm",
]
