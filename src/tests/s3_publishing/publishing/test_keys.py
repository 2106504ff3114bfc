"""Tests for key and URI resolution."""

from s3_publishing.common import encode_path_for_uri
from s3_publishing.publishing.keys import (
    normalize_uri,
    relative_publication_path_and_filename,
    resolve_key,
    resolve_uri,
    static_resource_uri,
)
from s3_publishing.run_config import TargetOptions
from tests.s3_publishing.fake_s3 import make_resource

PICTURE = make_resource(b"picture", "My Picture.jpg")


def _object_url(bucket: str, key: str) -> str:
    return f"https://{bucket}.s3.amazonaws.com/{encode_path_for_uri(key)}"


def test_relative_path_defaults_to_hash_directory():
    assert relative_publication_path_and_filename(PICTURE) == f"{PICTURE.sha1}/My Picture.jpg"


def test_relative_path_uses_explicit_publication_path():
    resource = make_resource(b"style", "main.css", relative_publication_path="Styles/")

    assert relative_publication_path_and_filename(resource) == "Styles/main.css"


def test_key_is_raw_and_prefixed():
    assert resolve_key(PICTURE, "published/") == f"published/{PICTURE.sha1}/My Picture.jpg"
    assert resolve_key(PICTURE) == f"{PICTURE.sha1}/My Picture.jpg"


def test_encode_path_keeps_slashes():
    assert encode_path_for_uri("abc/a b/ü?.png") == "abc/a%20b/%C3%BC%3F.png"


def test_uri_from_provider_url():
    options = TargetOptions(name="public", bucket="pub", key_prefix="p/")

    uri = resolve_uri(PICTURE, options, _object_url)

    assert uri == f"https://pub.s3.amazonaws.com/p/{PICTURE.sha1}/My%20Picture.jpg"


def test_uri_from_base_uri_omits_key_prefix():
    options = TargetOptions(name="public", bucket="pub", key_prefix="p/", base_uri="https://cdn.example.com/")

    uri = resolve_uri(PICTURE, options, _object_url)

    assert uri == f"https://cdn.example.com/{PICTURE.sha1}/My%20Picture.jpg"


def test_uri_from_pattern():
    options = TargetOptions(
        name="public",
        bucket="pub",
        key_prefix="p/",
        base_uri="https://cdn.example.com/",
        persistent_resource_uri_pattern="{baseUri}{keyPrefix}{sha1}.{fileExtension}?bucket={bucketName}",
    )

    uri = resolve_uri(PICTURE, options, _object_url)

    assert uri == f"https://cdn.example.com/p/{PICTURE.sha1}.jpg?bucket=pub"


def test_pattern_result_is_normalized():
    options = TargetOptions(
        name="public", bucket="pub", persistent_resource_uri_pattern="https://cdn.example.com/{sha1}/{filename}"
    )

    uri = resolve_uri(PICTURE, options, _object_url)

    assert uri == f"https://cdn.example.com/{PICTURE.sha1}/My%20Picture.jpg"


def test_normalize_keeps_existing_escapes():
    assert normalize_uri("https://x.test/a%20b/100%/c d") == "https://x.test/a%20b/100%25/c%20d"


def test_static_resource_uri():
    with_base = TargetOptions(name="t", bucket="pub", key_prefix="p/", base_uri="https://cdn.example.com/")
    without_base = TargetOptions(name="t", bucket="pub", key_prefix="p/")

    assert static_resource_uri("Styles/main.css", with_base, _object_url) == "https://cdn.example.com/Styles/main.css"
    assert static_resource_uri("Styles/main.css", without_base, _object_url) == (
        "https://pub.s3.amazonaws.com/p/Styles/main.css"
    )
