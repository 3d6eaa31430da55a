from synergy_hub.models.enums import OperationType
from synergy_hub.services.model_catalog import (
    DEFAULT_IMAGE_MODEL,
    GENERIC_DESCRIPTORS,
    MODEL_CATALOG,
    clamp_side,
    get_descriptor,
    list_models,
    scale_to_pixel_cap,
    snap_to_supported_size,
)

IMAGE = OperationType.IMAGE_GENERATION
VIDEO = OperationType.VIDEO_GENERATION


def test_exact_lookup():
    descriptor = get_descriptor("google:4@1", IMAGE)
    assert descriptor is MODEL_CATALOG["google:4@1"]


def test_family_prefix_lookup():
    assert get_descriptor("bytedance:seedream@4.0", IMAGE).model_id == "bytedance:seedream@4.5"
    assert get_descriptor("google:3@1", VIDEO).model_id == "google:3@3"


def test_unknown_model_falls_back_to_generic():
    descriptor = get_descriptor("civitai:12345@1", IMAGE)
    assert descriptor is GENERIC_DESCRIPTORS[IMAGE]
    assert descriptor.model_id == DEFAULT_IMAGE_MODEL
    assert descriptor.supports_strength


def test_operation_mismatch_is_not_matched():
    # an image id looked up for video falls through to the video default
    assert get_descriptor("google:4@1", VIDEO) is GENERIC_DESCRIPTORS[VIDEO]


def test_snap_picks_nearest_aspect_ratio():
    sizes = ((1024, 1024), (1536, 1024), (1024, 1536))
    assert snap_to_supported_size(1920, 1080, sizes) == (1536, 1024)
    assert snap_to_supported_size(600, 1000, sizes) == (1024, 1536)
    assert snap_to_supported_size(500, 500, sizes) == (1024, 1024)


def test_snap_prefers_closest_area_for_equal_ratios():
    descriptor = MODEL_CATALOG["google:4@2"]
    assert descriptor.fit_dimensions(2000, 2000) == (2048, 2048)
    assert descriptor.fit_dimensions(900, 900) == (1024, 1024)


def test_pixel_cap_keeps_aspect_ratio():
    width, height = scale_to_pixel_cap(8192, 4096, 4096 * 4096)
    assert width * height <= 4096 * 4096
    assert abs(width / height - 2.0) < 0.01


def test_generic_models_clamp_each_side():
    descriptor = GENERIC_DESCRIPTORS[IMAGE]
    assert descriptor.fit_dimensions(4000, 32) == (2048, 64)
    assert clamp_side(10) == 64


def test_duration_snaps_to_allowed_values():
    veo = MODEL_CATALOG["google:3@3"]
    assert veo.fit_duration(5) == 4
    assert veo.fit_duration(7) == 6
    assert veo.fit_duration(30) == 8
    assert GENERIC_DESCRIPTORS[VIDEO].fit_duration(7) == 7


def test_list_models_filters_by_operation():
    videos = list_models(VIDEO)
    assert videos
    assert all(m["operation_type"] == VIDEO.value for m in videos)
    assert {m["id"] for m in list_models()} >= {"google:4@1", "openai:3@1"}
