"""Settings dataclasses and persistence helpers.

Settings live in ``~/.aventura/settings.json``. The API key is never written
in plaintext: it is stored as ``api_key_ciphertext``, a Fernet token prefixed
with the backend name. Values are resolved in this order, later wins::

    defaults -> settings file -> CLI overrides -> AVENTURA_* environment
"""

from __future__ import annotations

import json
import logging
import os
from dataclasses import asdict, dataclass, field, fields, replace
from pathlib import Path
from typing import Any, Callable, Dict, Mapping

from cryptography.fernet import Fernet, InvalidToken

__all__ = [
    "Settings",
    "RetrievalSettings",
    "LorebookAgentSettings",
    "FandomSettings",
    "SettingsStore",
    "SecretVault",
    "redact_secret",
]

LOGGER = logging.getLogger(__name__)
_CONFIG_HOME = Path.home() / ".aventura"
_DEFAULT_PATH = _CONFIG_HOME / "settings.json"
_FORMAT_VERSION = 1
_CIPHERTEXT_KEY = "api_key_ciphertext"


# ---------------------------------------------------------------------------
# Settings dataclasses
# ---------------------------------------------------------------------------


@dataclass(slots=True)
class RetrievalSettings:
    """Agentic retrieval configuration."""

    enabled: bool = False
    model: str = "deepseek/deepseek-v3.2"
    temperature: float = 0.3
    max_iterations: int = 10
    max_tokens: int = 1500
    system_prompt: str | None = None
    # Retrieval only runs once the story has more chapters than this.
    agentic_threshold: int = 30


@dataclass(slots=True)
class LorebookAgentSettings:
    """Interactive lorebook agent configuration."""

    model: str | None = None
    temperature: float | None = None
    max_tokens: int | None = None
    reasoning_effort: str | None = None
    provider_only: list[str] = field(default_factory=list)
    manual_body: dict[str, Any] = field(default_factory=dict)
    max_iterations: int | None = None
    system_prompt: str | None = None


@dataclass(slots=True)
class FandomSettings:
    """Fandom wiki lookups used by the lorebook agent."""

    base_url_template: str = "https://{wiki}.fandom.com/api.php"
    request_timeout: float = 20.0
    cache_ttl_seconds: float = 3600.0
    cache_max_entries: int = 256


@dataclass(slots=True)
class Settings:
    """Provider connection plus per-agent sections."""

    base_url: str = "https://openrouter.ai/api/v1"
    api_key: str = ""
    model: str = "deepseek/deepseek-v3.2"
    organization: str | None = None
    request_timeout: float = 90.0
    max_retries: int = 3
    retry_min_seconds: float = 0.5
    retry_max_seconds: float = 6.0
    default_headers: dict[str, str] = field(default_factory=dict)
    metadata: dict[str, Any] = field(default_factory=dict)
    debug_logging: bool = False
    retrieval: RetrievalSettings = field(default_factory=RetrievalSettings)
    lorebook: LorebookAgentSettings = field(default_factory=LorebookAgentSettings)
    fandom: FandomSettings = field(default_factory=FandomSettings)


_SECTIONS: Mapping[str, type] = {
    "retrieval": RetrievalSettings,
    "lorebook": LorebookAgentSettings,
    "fandom": FandomSettings,
}


# ---------------------------------------------------------------------------
# Environment overrides
# ---------------------------------------------------------------------------


def _parse_flag(raw: str) -> bool:
    return raw.strip().lower() in {"1", "true", "yes", "on", "debug"}


def _parse_int(raw: str) -> int:
    return int(raw.strip(), 10)


def _parse_float(raw: str) -> float:
    return float(raw.strip())


# variable -> (dotted settings key, parser)
_ENVIRONMENT: Mapping[str, tuple[str, Callable[[str], Any]]] = {
    "AVENTURA_API_KEY": ("api_key", str),
    "AVENTURA_BASE_URL": ("base_url", str),
    "AVENTURA_MODEL": ("model", str),
    "AVENTURA_ORGANIZATION": ("organization", str),
    "AVENTURA_DEBUG_LOGGING": ("debug_logging", _parse_flag),
    "AVENTURA_REQUEST_TIMEOUT": ("request_timeout", _parse_float),
    "AVENTURA_MAX_RETRIES": ("max_retries", _parse_int),
    "AVENTURA_RETRIEVAL_MAX_ITERATIONS": ("retrieval.max_iterations", _parse_int),
}


def _environment_overrides() -> Dict[str, Any]:
    found: Dict[str, Any] = {}
    for variable, (key, parse) in _ENVIRONMENT.items():
        raw = os.environ.get(variable)
        if raw is None:
            continue
        try:
            found[key] = parse(raw)
        except ValueError:
            LOGGER.warning("Ignoring invalid environment override %s=%r", variable, raw)
    return found


# ---------------------------------------------------------------------------
# Secret vault
# ---------------------------------------------------------------------------


class SecretVault:
    """Encrypts the API key with a Fernet key kept next to the settings file.

    Tokens look like ``fernet:<token>``. A token carrying a different prefix
    is handed back untouched so a file written by a newer backend is not
    destroyed on load.
    """

    strategy = "fernet"

    def __init__(self, *, key_path: Path | None = None) -> None:
        self._key_path = key_path or (_CONFIG_HOME / "settings.key")
        self._fernet: Fernet | None = None

    @property
    def key_path(self) -> Path:
        return self._key_path

    def encrypt(self, secret: str) -> str:
        if not secret:
            return ""
        token = self._cipher().encrypt(secret.encode("utf-8")).decode("ascii")
        return f"{self.strategy}:{token}"

    def decrypt(self, token: str | None) -> str:
        """Return the plaintext for ``token``.

        Raises:
            ValueError: The token does not decrypt with the stored key.
        """

        if not token:
            return ""
        prefix, sep, body = token.partition(":")
        if not sep:
            prefix, body = "", token
        if prefix and prefix != self.strategy:
            LOGGER.warning("Secret uses unsupported backend %r; leaving it encrypted", prefix)
            return token
        try:
            return self._cipher().decrypt(body.encode("ascii")).decode("utf-8")
        except InvalidToken as exc:
            raise ValueError("API key token could not be decrypted") from exc

    def _cipher(self) -> Fernet:
        if self._fernet is None:
            self._fernet = Fernet(self._read_or_create_key())
        return self._fernet

    def _read_or_create_key(self) -> bytes:
        path = self._key_path
        if path.exists():
            return path.read_bytes().strip()
        path.parent.mkdir(parents=True, exist_ok=True)
        key = Fernet.generate_key()
        staging = path.with_suffix(".tmp")
        staging.write_bytes(key)
        if os.name != "nt":  # pragma: no cover - depends on OS
            os.chmod(staging, 0o600)
        staging.replace(path)
        LOGGER.info("Created settings encryption key at %s", path)
        return key


# ---------------------------------------------------------------------------
# Store
# ---------------------------------------------------------------------------


class SettingsStore:
    """Reads and writes :class:`Settings` as JSON."""

    def __init__(self, path: Path | None = None, *, vault: SecretVault | None = None) -> None:
        self._path = path or _DEFAULT_PATH
        self._vault = vault or SecretVault(key_path=self._path.with_suffix(".key"))

    @property
    def path(self) -> Path:
        return self._path

    @property
    def vault(self) -> SecretVault:
        return self._vault

    def load(self, *, overrides: Mapping[str, Any] | None = None) -> Settings:
        """Load settings from disk, then apply CLI and environment overrides.

        A file holding a plaintext ``api_key`` or an older format version is
        rewritten in the current format.
        """

        payload = self._read_payload()
        settings, rewrite = self._decode(payload)
        if rewrite:
            try:
                self.save(settings)
            except OSError as exc:
                LOGGER.warning("Could not rewrite %s: %s", self._path, exc)

        if overrides:
            settings = _merge_overrides(settings, overrides, source="CLI")
        env = _environment_overrides()
        if env:
            settings = _merge_overrides(settings, env, source="environment")
        LOGGER.debug("Settings loaded from %s (model=%s)", self._path, settings.model)
        return settings

    def save(self, settings: Settings) -> Path:
        """Write ``settings`` atomically and return the file path."""

        document = asdict(settings)
        api_key = document.pop("api_key", "") or ""
        if api_key:
            document[_CIPHERTEXT_KEY] = self._vault.encrypt(api_key)
        document["version"] = _FORMAT_VERSION
        document["secret_backend"] = self._vault.strategy

        self._path.parent.mkdir(parents=True, exist_ok=True)
        staging = self._path.with_suffix(".tmp")
        staging.write_text(json.dumps(document, indent=2, sort_keys=True), encoding="utf-8")
        staging.replace(self._path)
        LOGGER.debug("Settings saved to %s", self._path)
        return self._path

    def _read_payload(self) -> Dict[str, Any]:
        try:
            document = json.loads(self._path.read_text(encoding="utf-8"))
        except FileNotFoundError:
            return {}
        except json.JSONDecodeError as exc:
            LOGGER.warning("Ignoring %s: invalid JSON (%s)", self._path, exc)
            return {}
        if not isinstance(document, dict):
            LOGGER.warning("Ignoring %s: top level is %s, not an object", self._path, type(document).__name__)
            return {}
        return document

    def _decode(self, payload: Dict[str, Any]) -> tuple[Settings, bool]:
        if not payload:
            return Settings(), False

        outdated = payload.get("version") != _FORMAT_VERSION
        ciphertext = payload.pop(_CIPHERTEXT_KEY, None)
        plaintext = payload.pop("api_key", None)
        api_key = ""
        if ciphertext:
            try:
                api_key = self._vault.decrypt(ciphertext)
            except ValueError as exc:
                LOGGER.warning("Dropping stored API key: %s", exc)
        elif plaintext:
            LOGGER.info("Found plaintext API key in %s; it will be encrypted", self._path)
            api_key = plaintext

        known = {item.name for item in fields(Settings)} - {"api_key"}
        values = {key: value for key, value in payload.items() if key in known}
        for name, section_type in _SECTIONS.items():
            if name in values:
                values[name] = _build_section(name, section_type, values[name])
        try:
            settings = Settings(**values)
        except TypeError as exc:
            LOGGER.warning("Ignoring settings file contents: %s", exc)
            settings = Settings()
        if api_key:
            settings = replace(settings, api_key=api_key)
        return settings, bool(plaintext and not ciphertext) or outdated


def _build_section(name: str, section_type: type, raw: Any) -> Any:
    if not isinstance(raw, Mapping):
        LOGGER.warning("Ignoring %s settings: expected an object, got %s", name, type(raw).__name__)
        return section_type()
    known = {item.name for item in fields(section_type)}
    try:
        return section_type(**{key: value for key, value in raw.items() if key in known})
    except TypeError as exc:
        LOGGER.warning("Invalid %s settings: %s", name, exc)
        return section_type()


def _merge_overrides(settings: Settings, overrides: Mapping[str, Any], *, source: str) -> Settings:
    """Apply flat or dotted overrides; ``None`` and unknown keys are skipped.

    ``{"retrieval.enabled": True}`` and ``{"retrieval": {"enabled": True}}``
    are equivalent. A ``metadata`` mapping is merged into the existing one.
    """

    top_level = {item.name for item in fields(Settings)}
    changes: Dict[str, Any] = {}
    section_changes: Dict[str, Dict[str, Any]] = {}
    for key, value in overrides.items():
        if value is None:
            continue
        section, dot, attr = key.partition(".")
        if dot and section in _SECTIONS:
            section_changes.setdefault(section, {})[attr] = value
        elif key in _SECTIONS and isinstance(value, Mapping):
            section_changes.setdefault(key, {}).update(value)
        elif key == "metadata" and isinstance(value, Mapping):
            changes["metadata"] = {**settings.metadata, **value}
        elif key in top_level:
            changes[key] = value

    for section, values in section_changes.items():
        current = getattr(settings, section)
        known = {item.name for item in fields(current)}
        accepted = {attr: value for attr, value in values.items() if attr in known}
        if accepted:
            changes[section] = replace(current, **accepted)

    if not changes:
        return settings
    LOGGER.debug("Applying %s settings overrides: %s", source, sorted(changes))
    return replace(settings, **changes)


def redact_secret(value: str) -> str:
    """Mask all but the first and last two characters of ``value``."""

    stripped = (value or "").strip()
    if len(stripped) <= 4:
        return "*" * len(stripped)
    return f"{stripped[:2]}{'*' * (len(stripped) - 4)}{stripped[-2:]}"
