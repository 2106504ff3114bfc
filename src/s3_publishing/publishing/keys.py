"""
Key and URI resolution for published resources.

Storage keys are raw strings; URIs percent-encode each path segment.
"""

import re
from collections.abc import Callable
from urllib.parse import quote

from ..common import encode_path_for_uri
from ..models import Resource
from ..run_config import TargetOptions

# Characters left untouched when normalizing a templated URI: RFC 3986 reserved
# delimiters plus "%" (existing escapes are kept as they are).
URI_SAFE_CHARACTERS = ":/?#[]@!$&'()*+,;=%~"

_STRAY_PERCENT = re.compile(r"%(?![0-9A-Fa-f]{2})")

ObjectUrlBuilder = Callable[[str, str], str]


def relative_publication_path_and_filename(resource: Resource) -> str:
    """
    Relative path and filename a resource is published under.

    Resources with an explicit publication sub-path use it as-is; all others are
    placed in a directory named after their hash, for example
    "c828d0f88ce197be1aff7cc2e5e86b1244241ac6/MyPicture.jpg".
    """
    if resource.relative_publication_path:
        return f"{resource.relative_publication_path}{resource.filename}"
    return f"{resource.sha1}/{resource.filename}"


def resolve_key(resource: Resource, key_prefix: str = "") -> str:
    """Raw object key of a published resource."""
    return f"{key_prefix}{relative_publication_path_and_filename(resource)}"


def normalize_uri(uri: str) -> str:
    """Percent-encode characters that are not valid in a URI, keeping delimiters and existing escapes."""
    return quote(_STRAY_PERCENT.sub("%25", uri), safe=URI_SAFE_CHARACTERS)


def expand_uri_pattern(pattern: str, resource: Resource, options: TargetOptions) -> str:
    """Substitute the supported placeholders verbatim, then normalize the result."""
    variables = {
        "{baseUri}": options.base_uri,
        "{bucketName}": options.bucket,
        "{keyPrefix}": options.key_prefix,
        "{sha1}": resource.sha1,
        "{filename}": resource.filename,
        "{fileExtension}": resource.file_extension,
    }
    uri = pattern
    for placeholder, replacement in variables.items():
        uri = uri.replace(placeholder, replacement)
    return normalize_uri(uri)


def resolve_uri(resource: Resource, options: TargetOptions, object_url: ObjectUrlBuilder) -> str:
    """
    Public URI of a published resource.

    Args:
        resource: Resource to resolve
        options: Target options (pattern, base URI, bucket, key prefix)
        object_url: Provider's canonical URL builder, called as object_url(bucket, key)

    Returns:
        The templated URI if a pattern is configured, else base URI + encoded
        relative path if a base URI is configured, else the provider URL.
    """
    if options.persistent_resource_uri_pattern:
        return expand_uri_pattern(options.persistent_resource_uri_pattern, resource, options)

    relative_path = relative_publication_path_and_filename(resource)
    if options.base_uri:
        return f"{options.base_uri}{encode_path_for_uri(relative_path)}"

    return object_url(options.bucket, f"{options.key_prefix}{relative_path}")


def static_resource_uri(relative_path: str, options: TargetOptions, object_url: ObjectUrlBuilder) -> str:
    """Public URI of a static (non-persistent) resource published under relative_path."""
    if options.base_uri:
        return f"{options.base_uri}{relative_path}"
    return object_url(options.bucket, f"{options.key_prefix}{relative_path}")
