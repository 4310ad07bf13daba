"""Server setup and provider/model selection.

Everything here persists through a :class:`PreferencesStore`; the client
itself stays stateless about which server or model the user picked.
"""

from typing import Callable, Optional, Tuple

from pydantic import BaseModel

from opencode_chat.api.client import OpenCodeClient
from opencode_chat.api.models import HealthResponse, Provider, ProvidersResponse
from opencode_chat.config.models import Preferences
from opencode_chat.config.preferences import PreferencesStore
from opencode_chat.utils.errors import InvalidConfigurationError, ResourceError, UsageError
from opencode_chat.utils.logging import get_logger

logger = get_logger(__name__)


def normalize_base_url(text: Optional[str]) -> Optional[str]:
    """Trim, default the scheme to http:// and drop trailing slashes. Blank gives None."""
    url = (text or "").strip()
    if not url:
        return None
    if not url.startswith(("http://", "https://")):
        url = f"http://{url}"
    return url.rstrip("/")


class Selection(BaseModel):
    provider_id: Optional[str] = None
    model_id: Optional[str] = None

    @property
    def is_complete(self) -> bool:
        return bool(self.provider_id and self.model_id)

    def __str__(self) -> str:
        if not self.is_complete:
            return "server default"
        return f"{self.provider_id}/{self.model_id}"


def _first_model_id(provider: Optional[Provider]) -> Optional[str]:
    if provider is None or not provider.models:
        return None
    return next(iter(provider.models.values())).id


def resolve_selection(providers: ProvidersResponse, prefs: Preferences) -> Selection:
    """Pick a provider and model: saved choice, else server default, else the first listed.

    The server default map is either flat (``providerID``/``modelID`` keys) or
    keyed by provider id with that provider's default model as the value.
    """
    preferred_provider = (
        prefs.last_provider
        or providers.default.get("providerID")
        or providers.default.get("provider")
    )
    provider = providers.get_provider(preferred_provider) if preferred_provider else None
    if provider is None and providers.all:
        provider = providers.all[0]
    if provider is None:
        return Selection()

    preferred_model = (
        prefs.last_model
        or providers.default.get("modelID")
        or providers.default.get("model")
        or providers.default.get(provider.id)
    )
    if preferred_model and preferred_model in provider.models:
        return Selection(provider_id=provider.id, model_id=preferred_model)
    return Selection(provider_id=provider.id, model_id=_first_model_id(provider))


class ConnectionService:
    """Connects to a server, remembers it, and tracks the selected model."""

    def __init__(
        self,
        preferences: PreferencesStore,
        client_factory: Callable[[str], OpenCodeClient] = OpenCodeClient,
    ):
        self.preferences = preferences
        self.client_factory = client_factory

    async def connect(self, url: str) -> Tuple[str, HealthResponse]:
        """Health-check ``url`` and, if healthy, save it as the server.

        Returns the normalized URL and the health response. Nothing is saved
        when the check fails.

        Raises:
            InvalidConfigurationError: blank or malformed URL
            ResourceError: unreachable or unhealthy server
        """
        normalized = normalize_base_url(url)
        if normalized is None:
            raise InvalidConfigurationError("Server URL is empty", value=url)

        async with self.client_factory(normalized) as client:
            health = await client.health_check()

        if not health.healthy:
            raise ResourceError(
                f"Server at {normalized} reported unhealthy",
                hint="Check the server logs, then try again",
            )

        self.preferences.update(base_url=normalized, setup_complete=True)
        logger.info(f"Connected to OpenCode {health.version} at {normalized}")
        return normalized, health

    def disconnect(self) -> None:
        """Forget the saved server."""
        self.preferences.update(base_url=None, setup_complete=False)
        logger.info("Disconnected from server")

    @property
    def selection(self) -> Selection:
        prefs = self.preferences.load()
        return Selection(provider_id=prefs.last_provider, model_id=prefs.last_model)

    def _save_selection(self, selection: Selection) -> Selection:
        changes = {}
        if selection.provider_id is not None:
            changes["last_provider"] = selection.provider_id
        if selection.model_id is not None:
            changes["last_model"] = selection.model_id
        if changes:
            self.preferences.update(**changes)
        return selection

    async def refresh_selection(self, client: OpenCodeClient) -> Tuple[ProvidersResponse, Selection]:
        """Load providers and resolve (and save) the current selection."""
        providers = await client.get_providers()
        selection = resolve_selection(providers, self.preferences.load())
        logger.debug(f"Resolved model selection: {selection}")
        return providers, self._save_selection(selection)

    def select_provider(self, providers: ProvidersResponse, provider_id: str) -> Selection:
        """Switch provider; the model becomes that provider's first model."""
        provider = providers.get_provider(provider_id)
        if provider is None:
            raise UsageError(f"Unknown provider '{provider_id}'")
        return self._save_selection(Selection(provider_id=provider.id, model_id=_first_model_id(provider)))

    def select_model(self, providers: ProvidersResponse, provider_id: str, model_id: str) -> Selection:
        if providers.get_provider(provider_id) is None:
            raise UsageError(f"Unknown provider '{provider_id}'")
        if providers.find_model(provider_id, model_id) is None:
            raise UsageError(f"Provider '{provider_id}' has no model '{model_id}'")
        return self._save_selection(Selection(provider_id=provider_id, model_id=model_id))
