"""Image-to-3D-world conversion: provider client, job driver and gateways."""

from ..errors import ConversionError, ConversionFailureKind
from .gateway import AssetConversionGateway, ConversionGateway, InProcessConversionGateway
from .job import (
    ConversionJob,
    ConversionResult,
    InvalidStageTransition,
    JobStage,
    PollState,
    PollStatus,
    UploadPayload,
)
from .media import decode_data_uri, normalize_image_source, sniff_mime_type
from .provider import WorldLabsProvider, select_asset_url
from .service import ConversionService, create_conversion_service

__all__ = [
    "ConversionError",
    "ConversionFailureKind",
    "AssetConversionGateway",
    "ConversionGateway",
    "InProcessConversionGateway",
    "ConversionJob",
    "ConversionResult",
    "InvalidStageTransition",
    "JobStage",
    "PollState",
    "PollStatus",
    "UploadPayload",
    "decode_data_uri",
    "normalize_image_source",
    "sniff_mime_type",
    "WorldLabsProvider",
    "select_asset_url",
    "ConversionService",
    "create_conversion_service",
]
