import pytest

from core.models import BasemapProvider, BoundingBox, GeoBounds
from core.services.basemap_selector import (
    BasemapSelector,
    HybridTileConfig,
    MapConfig,
    OfflineTileConfig,
)

BOUNDS = GeoBounds(
    bounds=BoundingBox(37.0, -122.0, 37.01, -121.99),
    buffered=BoundingBox(36.99, -122.01, 37.02, -121.98),
)


@pytest.fixture
def offline_config():
    return MapConfig(offline=OfflineTileConfig())


def test_startup_uses_offline_when_configured(offline_config):
    selector = BasemapSelector(offline_config)
    assert selector.provider == BasemapProvider.OFFLINE
    assert selector.pan_constraint() is None
    assert selector.base_layer().url == "/tiles/{z}/{x}/{y}"


def test_startup_without_offline_is_blank_canvas():
    selector = BasemapSelector(MapConfig())
    assert selector.provider == BasemapProvider.NONE
    assert selector.base_layer() is None
    assert "blank canvas" in selector.status_message()


def test_bounds_without_token_fit_view_without_constraint(offline_config):
    selector = BasemapSelector(offline_config)
    selector.on_dataset_bounds_available(BOUNDS)
    assert selector.provider == BasemapProvider.OFFLINE
    assert selector.view.fit_bounds == BOUNDS.buffered
    assert selector.pan_constraint() is None


def test_server_token_armed_and_promoted_on_bounds(offline_config):
    config = MapConfig(offline=OfflineTileConfig(), hybrid=HybridTileConfig(token="server-tok"))
    selector = BasemapSelector(config)
    assert selector.provider == BasemapProvider.OFFLINE

    selector.on_dataset_bounds_available(BOUNDS)
    assert selector.provider == BasemapProvider.HYBRID
    assert selector.state.active_token == "server-tok"
    assert selector.pan_constraint() == BOUNDS.buffered
    assert (selector.view.min_zoom, selector.view.max_zoom) == (15, 18)
    assert "server-provided" in selector.status_message()


def test_stored_user_token_wins_over_server_token():
    config = MapConfig(hybrid=HybridTileConfig(token="server-tok"))
    selector = BasemapSelector(config, stored_token="  user-tok ")
    selector.on_dataset_bounds_available(BOUNDS)
    assert selector.state.active_token == "user-tok"
    assert "user-supplied" in selector.status_message()


def test_set_token_applies_hybrid_and_rederives_view(offline_config):
    selector = BasemapSelector(offline_config)
    selector.on_dataset_bounds_available(BOUNDS)
    assert selector.pan_constraint() is None

    assert selector.set_token("  abc/def ")
    assert selector.provider == BasemapProvider.HYBRID
    assert selector.state.active_token == "abc/def"
    assert selector.pan_constraint() == BOUNDS.buffered
    layer = selector.base_layer()
    assert layer.tile_size == 512
    assert layer.url == (
        "https://api.mapbox.com/styles/v1/mapbox/satellite-streets-v12/tiles/512/{z}/{x}/{y}@2x"
        "?access_token=abc%2Fdef"
    )


def test_empty_token_reverts_to_server_default():
    selector = BasemapSelector(MapConfig(hybrid=HybridTileConfig(token="server-tok")))
    selector.set_token("user-tok")
    assert not selector.set_token("   ")
    assert selector.provider == BasemapProvider.HYBRID
    assert selector.state.active_token == "server-tok"


def test_empty_token_without_server_default_falls_back(offline_config):
    selector = BasemapSelector(offline_config)
    selector.set_token("user-tok")
    selector.set_token("")
    assert selector.provider == BasemapProvider.OFFLINE
    selector.on_dataset_bounds_available(BOUNDS)
    assert selector.provider == BasemapProvider.OFFLINE


def test_tile_failure_falls_back_and_does_not_retry(offline_config):
    selector = BasemapSelector(offline_config, stored_token="tok")
    selector.on_dataset_bounds_available(BOUNDS)
    assert selector.provider == BasemapProvider.HYBRID

    assert selector.on_tile_load_failure()
    assert selector.provider == BasemapProvider.OFFLINE
    assert selector.pan_constraint() is None
    assert selector.view.fit_bounds == BOUNDS.buffered

    # A later bounds event stays on the fallback until a token is applied again
    selector.on_dataset_bounds_available(BOUNDS)
    assert selector.provider == BasemapProvider.OFFLINE
    assert not selector.on_tile_load_failure()

    selector.set_token("tok")
    assert selector.provider == BasemapProvider.HYBRID


def test_tile_failure_without_offline_goes_to_none():
    selector = BasemapSelector(MapConfig(), stored_token="tok")
    selector.on_dataset_bounds_available(BOUNDS)
    selector.on_tile_load_failure()
    assert selector.provider == BasemapProvider.NONE
    assert selector.base_layer() is None


def test_reset_restores_startup_state(offline_config):
    selector = BasemapSelector(offline_config, stored_token="tok")
    selector.on_dataset_bounds_available(BOUNDS)
    selector.reset()
    assert selector.provider == BasemapProvider.OFFLINE
    assert selector.pan_constraint() is None
    assert selector.view.fit_bounds is None
    # Token is re-armed for the next dataset
    selector.on_dataset_bounds_available(BOUNDS)
    assert selector.provider == BasemapProvider.HYBRID


def test_clear_bounds_keeps_token_disarmed_after_tile_failure(offline_config):
    selector = BasemapSelector(offline_config, stored_token="tok")
    selector.on_dataset_bounds_available(BOUNDS)
    selector.on_tile_load_failure()

    selector.clear_bounds()
    assert selector.view.fit_bounds is None
    selector.on_dataset_bounds_available(BOUNDS)
    assert selector.provider == BasemapProvider.OFFLINE


def test_clear_bounds_keeps_active_token_armed(offline_config):
    selector = BasemapSelector(offline_config, stored_token="tok")
    selector.on_dataset_bounds_available(BOUNDS)

    selector.clear_bounds()
    assert selector.provider == BasemapProvider.OFFLINE
    assert selector.pan_constraint() is None
    selector.on_dataset_bounds_available(BOUNDS)
    assert selector.provider == BasemapProvider.HYBRID


def test_unbuffered_bounds_are_used_when_no_buffer(offline_config):
    selector = BasemapSelector(offline_config)
    plain = GeoBounds(bounds=BOUNDS.bounds)
    selector.on_dataset_bounds_available(plain)
    assert selector.view.fit_bounds == BOUNDS.bounds
