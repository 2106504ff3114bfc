#!/usr/bin/env python3
"""
Run Configuration Management

Binds the JSON settings file (profile, storages, targets, collections) into
frozen dataclasses. Options are validated once here; an unknown option fails
fast with ConfigurationError before any network call is made.
"""

import json
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, cast

from .constants import (
    DEFAULT_ACL,
    DEFAULT_CORS_ALLOW_ORIGIN,
    DEFAULT_UNPUBLISH_RESOURCES,
    STORAGE_TYPES,
)
from .exceptions import ConfigurationError

PROFILE_OPTIONS = ("region", "endpoint_url", "access_key", "secret_key", "acl", "unpublish_resources")
STORAGE_OPTIONS = ("type", "bucket", "key_prefix", "base_path")
TARGET_OPTIONS = (
    "bucket",
    "key_prefix",
    "base_uri",
    "persistent_resource_uris",
    "acl",
    "unpublish_resources",
    "cors_allow_origin",
)
URI_OPTIONS = ("pattern",)
COLLECTION_OPTIONS = ("storage", "target")


def _check_unknown_options(options: dict[str, Any], allowed: tuple[str, ...], context: str) -> None:
    """Reject unknown option keys. Keys explicitly set to null are tolerated."""
    for key, value in options.items():
        if key not in allowed and value is not None:
            raise ConfigurationError(
                f'An unknown option "{key}" was specified in the configuration of {context}. Please check your settings.'
            )


def _as_str(value: Any, key: str, context: str, default: str = "") -> str:
    if value is None:
        return default
    if not isinstance(value, str):
        raise ConfigurationError(f'The option "{key}" of {context} must be a string, got {type(value).__name__}')
    return value


def _as_bool(value: Any, key: str, context: str) -> bool | None:
    if value is None:
        return None
    if not isinstance(value, bool):
        raise ConfigurationError(f'The option "{key}" of {context} must be a boolean, got {type(value).__name__}')
    return value


@dataclass(frozen=True)
class ProfileConfig:
    """Client options shared by every storage and target."""

    region: str | None = None
    endpoint_url: str | None = None
    access_key: str | None = None
    secret_key: str | None = None
    acl: str = DEFAULT_ACL
    unpublish_resources: bool = DEFAULT_UNPUBLISH_RESOURCES

    @classmethod
    def from_options(cls, options: dict[str, Any] | None) -> "ProfileConfig":
        options = options or {}
        context = "the default profile"
        _check_unknown_options(options, PROFILE_OPTIONS, context)
        unpublish = _as_bool(options.get("unpublish_resources"), "unpublish_resources", context)
        return cls(
            region=_as_str(options.get("region"), "region", context) or None,
            endpoint_url=_as_str(options.get("endpoint_url"), "endpoint_url", context) or None,
            access_key=_as_str(options.get("access_key"), "access_key", context) or None,
            secret_key=_as_str(options.get("secret_key"), "secret_key", context) or None,
            acl=_as_str(options.get("acl"), "acl", context, default=DEFAULT_ACL),
            unpublish_resources=DEFAULT_UNPUBLISH_RESOURCES if unpublish is None else unpublish,
        )


@dataclass(frozen=True)
class StorageOptions:
    """Options of a content-addressed storage."""

    name: str
    type: STORAGE_TYPES = "s3"
    bucket: str = ""
    key_prefix: str = ""
    base_path: str = ""

    @classmethod
    def from_options(cls, name: str, options: dict[str, Any]) -> "StorageOptions":
        context = f'the "{name}" resource storage'
        _check_unknown_options(options, STORAGE_OPTIONS, context)

        storage_type = _as_str(options.get("type"), "type", context, default="s3")
        match storage_type:
            case "s3":
                # The bucket defaults to the storage name
                bucket = _as_str(options.get("bucket"), "bucket", context) or name
                return cls(
                    name=name,
                    type="s3",
                    bucket=bucket,
                    key_prefix=_as_str(options.get("key_prefix"), "key_prefix", context),
                )
            case "local":
                base_path = _as_str(options.get("base_path"), "base_path", context)
                if not base_path:
                    raise ConfigurationError(f"Local storage requires explicit base_path in {context}")
                return cls(
                    name=name,
                    type="local",
                    base_path=base_path,
                    key_prefix=_as_str(options.get("key_prefix"), "key_prefix", context),
                )
            case _:
                raise ConfigurationError(f'Unknown storage type "{storage_type}" in {context}')


@dataclass(frozen=True)
class TargetOptions:
    """Options of a publishing target. ACL and unpublish flags are resolved against the profile."""

    name: str
    bucket: str
    key_prefix: str = ""
    base_uri: str = ""
    persistent_resource_uri_pattern: str = ""
    acl: str = DEFAULT_ACL
    unpublish_resources: bool = DEFAULT_UNPUBLISH_RESOURCES
    cors_allow_origin: str = DEFAULT_CORS_ALLOW_ORIGIN

    @classmethod
    def from_options(
        cls, name: str, options: dict[str, Any], profile: ProfileConfig | None = None
    ) -> "TargetOptions":
        profile = profile or ProfileConfig()
        context = f'the "{name}" resource target'
        _check_unknown_options(options, TARGET_OPTIONS, context)

        bucket = _as_str(options.get("bucket"), "bucket", context)
        if not bucket:
            raise ConfigurationError(f'No bucket was specified in the configuration of {context}')

        pattern = ""
        uri_options = options.get("persistent_resource_uris")
        if uri_options is not None:
            if not isinstance(uri_options, dict):
                raise ConfigurationError(
                    f'The option "persistent_resource_uris" which was specified in the configuration of {context} '
                    "is not a valid mapping. Please check your settings."
                )
            _check_unknown_options(uri_options, URI_OPTIONS, context)
            pattern = _as_str(uri_options.get("pattern"), "pattern", context)

        # A target-level ACL of "" explicitly disables ACLs; None falls back to the profile
        acl = options.get("acl")
        unpublish = _as_bool(options.get("unpublish_resources"), "unpublish_resources", context)

        return cls(
            name=name,
            bucket=bucket,
            key_prefix=_as_str(options.get("key_prefix"), "key_prefix", context),
            base_uri=_as_str(options.get("base_uri"), "base_uri", context),
            persistent_resource_uri_pattern=pattern,
            acl=profile.acl if acl is None else _as_str(acl, "acl", context),
            unpublish_resources=profile.unpublish_resources if unpublish is None else unpublish,
            cors_allow_origin=_as_str(
                options.get("cors_allow_origin"), "cors_allow_origin", context, default=DEFAULT_CORS_ALLOW_ORIGIN
            ),
        )


@dataclass(frozen=True)
class CollectionConfig:
    """A named pairing of one storage with one target."""

    name: str
    storage: str
    target: str


@dataclass(frozen=True)
class Settings:
    """Complete publishing configuration."""

    profile: ProfileConfig = field(default_factory=ProfileConfig)
    database: Path = Path("resources.db")
    storages: dict[str, StorageOptions] = field(default_factory=dict)
    targets: dict[str, TargetOptions] = field(default_factory=dict)
    collections: dict[str, CollectionConfig] = field(default_factory=dict)

    def get_collection(self, name: str) -> CollectionConfig:
        try:
            return self.collections[name]
        except KeyError:
            raise ConfigurationError(f"The collection {name} does not exist.") from None


def _section(data: dict[str, Any], key: str) -> dict[str, Any]:
    section = data.get(key) or {}
    if not isinstance(section, dict):
        raise ConfigurationError(f'The "{key}" section of the settings must be a mapping')
    return cast(dict[str, Any], section)


def build_settings(data: dict[str, Any]) -> Settings:
    """Build and cross-validate Settings from a parsed settings mapping."""
    _check_unknown_options(data, ("profile", "database", "storages", "targets", "collections"), "the settings")

    profile = ProfileConfig.from_options(_section(data, "profile"))
    storages = {
        name: StorageOptions.from_options(name, options or {}) for name, options in _section(data, "storages").items()
    }
    targets = {
        name: TargetOptions.from_options(name, options or {}, profile)
        for name, options in _section(data, "targets").items()
    }

    collections = {}
    for name, options in _section(data, "collections").items():
        options = options or {}
        context = f'the "{name}" resource collection'
        _check_unknown_options(options, COLLECTION_OPTIONS, context)
        storage_name = _as_str(options.get("storage"), "storage", context)
        target_name = _as_str(options.get("target"), "target", context)
        if storage_name not in storages:
            raise ConfigurationError(f'The storage "{storage_name}" referenced by {context} is not configured')
        if target_name not in targets:
            raise ConfigurationError(f'The target "{target_name}" referenced by {context} is not configured')
        collections[name] = CollectionConfig(name=name, storage=storage_name, target=target_name)

    database = data.get("database") or "resources.db"
    return Settings(
        profile=profile,
        database=Path(_as_str(database, "database", "the settings")),
        storages=storages,
        targets=targets,
        collections=collections,
    )


def load_settings(settings_path: str | Path) -> Settings:
    """Load settings from a JSON file."""
    settings_path = Path(settings_path)
    try:
        with open(settings_path) as f:
            data = json.load(f)
    except FileNotFoundError:
        raise ConfigurationError(f"Settings file not found: {settings_path}") from None
    except json.JSONDecodeError as e:
        raise ConfigurationError(f"Invalid JSON in settings file {settings_path}: {e}") from e

    if not isinstance(data, dict):
        raise ConfigurationError(f"Settings file {settings_path} must contain a JSON object")
    return build_settings(data)
