"""Base layer selection with automatic fallback.

Three providers exist: no backdrop, an offline tile set, and token-gated
hybrid (satellite + streets) tiles. Hybrid is only used once a token is known
and dataset bounds are available; a tile failure drops back to the fallback
provider and stays there until a token is applied again or the session is
reset.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from urllib.parse import quote

from loguru import logger

from core.models import BasemapProvider, BasemapState, BoundingBox, GeoBounds
from core.services.geo_bounds import DEFAULT_BUFFER_FEET
from core.services.interfaces import MapView, TileLayer

DEFAULT_HYBRID_STYLE = "mapbox/satellite-streets-v12"
DEFAULT_HYBRID_ATTRIBUTION = "Mapbox; OpenStreetMap contributors"
DEFAULT_OFFLINE_URL = "/tiles/{z}/{x}/{y}"
DEFAULT_OFFLINE_ATTRIBUTION = "Metainfo Mapper"
HYBRID_URL_TEMPLATE = (
    "https://api.mapbox.com/styles/v1/{style}/tiles/512/{{z}}/{{x}}/{{y}}@2x?access_token={token}"
)


@dataclass(frozen=True)
class OfflineTileConfig:
    url: str = DEFAULT_OFFLINE_URL
    min_zoom: int = 1
    max_zoom: int = 17
    attribution: str = DEFAULT_OFFLINE_ATTRIBUTION


@dataclass(frozen=True)
class HybridTileConfig:
    """Server defaults for hybrid tiles; `token` may be empty."""

    token: str = ""
    style: str = DEFAULT_HYBRID_STYLE
    min_zoom: int = 15
    max_zoom: int = 18
    attribution: str = DEFAULT_HYBRID_ATTRIBUTION


@dataclass(frozen=True)
class MapConfig:
    """Map surface configuration.

    Attributes:
        offline: Offline tile source, or None when not packaged.
        hybrid: Hybrid tile defaults, or None when the server offers none.
        buffer_feet: Margin added around the data extent.
        default_center: (lat, lon) of the initial view.
        default_zoom: Zoom of the initial view.
    """

    offline: OfflineTileConfig | None = None
    hybrid: HybridTileConfig | None = None
    buffer_feet: float = DEFAULT_BUFFER_FEET
    default_center: tuple[float, float] = field(default=(39.0, -98.0))
    default_zoom: int = 4
    min_zoom: int = 1
    max_zoom: int = 18


class BasemapSelector:
    """Owns `BasemapState` and the map view derived from it."""

    def __init__(self, config: MapConfig, stored_token: str | None = None) -> None:
        """Create the selector in its startup state.

        Args:
            config: Map configuration.
            stored_token: User token persisted from an earlier session, if any.
        """
        self._config = config
        self._user_token: str | None = (stored_token or "").strip() or None
        self._armed_token: str | None = None
        self._bounds: GeoBounds | None = None
        self.state = BasemapState()
        self.view = self._default_view()
        self.reset()

    @property
    def provider(self) -> BasemapProvider:
        return self.state.provider

    @property
    def user_token(self) -> str | None:
        return self._user_token

    def _server_token(self) -> str | None:
        hybrid = self._config.hybrid
        if hybrid is None:
            return None
        return hybrid.token.strip() or None

    def _fallback_provider(self) -> BasemapProvider:
        return BasemapProvider.OFFLINE if self._config.offline else BasemapProvider.NONE

    def _default_view(self) -> MapView:
        offline = self._config.offline
        return MapView(
            center=self._config.default_center,
            zoom=self._config.default_zoom,
            min_zoom=offline.min_zoom if offline else self._config.min_zoom,
            max_zoom=offline.max_zoom if offline else self._config.max_zoom,
        )

    def _use_fallback(self) -> None:
        self.state = BasemapState(provider=self._fallback_provider(), active_token=None)

    def reset(self) -> None:
        """Return to the startup state: fallback provider, no bounds, no pan limit."""
        self._use_fallback()
        self._armed_token = self._user_token or self._server_token()
        self._bounds = None
        self.view = self._default_view()

    def clear_bounds(self) -> None:
        """Forget the dataset extent without touching token arming.

        An active hybrid token goes back to armed; a token disarmed by a tile
        failure stays disarmed.
        """
        if self.state.provider == BasemapProvider.HYBRID:
            self._armed_token = self.state.active_token
        self._use_fallback()
        self._bounds = None
        self.view = self._default_view()

    def set_token(self, token: str | None) -> bool:
        """Apply a user token; an empty token reverts to the server default.

        Returns True when a non-empty user token was applied.
        """
        trimmed = (token or "").strip()
        if trimmed:
            self._user_token = trimmed
            self._armed_token = trimmed
            self.state = BasemapState(provider=BasemapProvider.HYBRID, active_token=trimmed)
            logger.info("Hybrid tiles enabled with user token")
        else:
            self._user_token = None
            server = self._server_token()
            if server:
                self._armed_token = server
                self.state = BasemapState(provider=BasemapProvider.HYBRID, active_token=server)
                logger.info("Reverted to server-provided hybrid token")
            else:
                self._armed_token = None
                self._use_fallback()
                logger.info("Token cleared, using {} basemap", self.state.provider.value)

        if self._bounds is not None:
            self.on_dataset_bounds_available(self._bounds)
        return bool(trimmed)

    def on_dataset_bounds_available(self, bounds: GeoBounds) -> None:
        """Pick the provider for a dataset extent and fit the view to it."""
        self._bounds = bounds
        target = bounds.target
        token = self.state.active_token if self.state.provider == BasemapProvider.HYBRID else self._armed_token
        if token:
            hybrid = self._config.hybrid or HybridTileConfig()
            self.state = BasemapState(provider=BasemapProvider.HYBRID, active_token=token)
            self.view = MapView(
                center=self._config.default_center,
                zoom=self._config.default_zoom,
                min_zoom=hybrid.min_zoom,
                max_zoom=hybrid.max_zoom,
                fit_bounds=target,
                pan_constraint=target,
            )
            return

        self._use_fallback()
        base = self._default_view()
        self.view = MapView(
            center=base.center,
            zoom=base.zoom,
            min_zoom=base.min_zoom,
            max_zoom=base.max_zoom,
            fit_bounds=target,
            pan_constraint=None,
        )

    def on_tile_load_failure(self) -> bool:
        """Drop from hybrid to the fallback provider.

        Hybrid is not retried automatically; a token must be applied again.
        Returns True when a transition happened.
        """
        if self.state.provider != BasemapProvider.HYBRID:
            return False
        logger.warning("Hybrid tile load failed, reverting to {} basemap", self._fallback_provider().value)
        self._armed_token = None
        self._use_fallback()
        base = self._default_view()
        fit = self._bounds.target if self._bounds is not None else None
        self.view = MapView(
            center=base.center,
            zoom=base.zoom,
            min_zoom=base.min_zoom,
            max_zoom=base.max_zoom,
            fit_bounds=fit,
            pan_constraint=None,
        )
        return True

    def base_layer(self) -> TileLayer | None:
        """Tile layer for the active provider, or None for a blank canvas."""
        if self.state.provider == BasemapProvider.HYBRID and self.state.active_token:
            hybrid = self._config.hybrid or HybridTileConfig()
            url = HYBRID_URL_TEMPLATE.format(style=hybrid.style, token=quote(self.state.active_token, safe=""))
            return TileLayer(
                provider=BasemapProvider.HYBRID.value,
                url=url,
                min_zoom=hybrid.min_zoom,
                max_zoom=hybrid.max_zoom,
                attribution=hybrid.attribution,
                tile_size=512,
            )
        offline = self._config.offline
        if self.state.provider == BasemapProvider.OFFLINE and offline is not None:
            return TileLayer(
                provider=BasemapProvider.OFFLINE.value,
                url=offline.url,
                min_zoom=offline.min_zoom,
                max_zoom=offline.max_zoom,
                attribution=offline.attribution,
            )
        return None

    def pan_constraint(self) -> BoundingBox | None:
        return self.view.pan_constraint

    def status_message(self) -> str:
        """Describe which token, if any, drives the hybrid tiles."""
        token = self.state.active_token or self._armed_token
        if token:
            if self._user_token and token == self._user_token:
                return "Using user-supplied Mapbox token. Tiles load once imagery is processed."
            return "Using server-provided Mapbox token. Tiles load once imagery is processed."
        if self._config.offline is not None:
            return "No Mapbox token active. Offline tiles will be used."
        return "No Mapbox token active. Offline blank canvas will be used."
