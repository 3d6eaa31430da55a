from enum import Enum


class OperationType(str, Enum):
    IMAGE_GENERATION = "image-generation"
    VIDEO_GENERATION = "video-generation"
    UPSCALE = "upscale"
    SKIN_ENHANCE = "skin-enhance"
    INPAINT = "inpaint"


class MediaType(str, Enum):
    IMAGE = "image"
    VIDEO = "video"
