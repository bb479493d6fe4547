#!/usr/bin/env python3
"""
Core library for turning a CustomResourceDefinition into standalone schemas.

The pipeline runs in four steps:
- Read the CRD manifest from a local path or an HTTP(S) URL
- Decode it into one of the two known CRD layouts (v1 / v1beta1)
- Extract the openAPIV3Schema of every version and name it the way
  kubeconform looks schemas up: {kind}-{version}-{group}.json
- Write every schema as indented JSON into the output directory

Nothing in here prints; progress output belongs to the command-line wrapper.
"""

import json
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, ClassVar
from urllib.parse import urlparse

import requests
import yaml

USER_AGENT = "Replicated_CRDToOpenApiSchema/v1alpha1"

STABLE_API_VERSION = "apiextensions.k8s.io/v1"
LEGACY_API_VERSION = "apiextensions.k8s.io/v1beta1"
CRD_KIND = "CustomResourceDefinition"

FILENAME_TEMPLATE = "{kind}{kind_suffix}.json"

# =============================================================================
# ERRORS
# =============================================================================


class CRDSchemaError(Exception):
    """Base class for every failure the extraction pipeline reports."""

    def __init__(self, message: str, errors: list[str] | None = None):
        super().__init__(message)
        self.errors = list(errors or [])

    def with_context(self, context: str) -> "CRDSchemaError":
        """Return a copy of this error with `context` prepended to the message."""
        return type(self)(f"{context}: {self}", self.errors)


class NotFoundError(CRDSchemaError):
    """Raised when a local CRD path does not exist."""


class ReadError(CRDSchemaError):
    """Raised when an existing local CRD file cannot be read."""


class FetchError(CRDSchemaError):
    """Raised when a CRD URL cannot be requested or does not answer 200."""


class DecodeError(CRDSchemaError):
    """Raised when the content is not a v1 or v1beta1 CustomResourceDefinition."""


class NoSchemaError(CRDSchemaError):
    """Raised when a CRD decodes fine but carries no openAPIV3Schema at all."""


class SerializeError(CRDSchemaError):
    """Raised after serialization when one or more schemas failed to marshal."""


class WriteError(CRDSchemaError):
    """Raised after writing when one or more schema files could not be written.

    `files` lists the paths that were written before and after the failures.
    """

    def __init__(self, message: str, errors: list[str] | None = None, files: list[Path] | None = None):
        super().__init__(message, errors)
        self.files = list(files or [])


# =============================================================================
# RESULTS
# =============================================================================


@dataclass
class Result:
    """Partial success of a step that keeps going after per-item failures."""

    items: Any
    errors: list[str] = field(default_factory=list)

    error_type: ClassVar[type[CRDSchemaError]] = CRDSchemaError

    @property
    def ok(self) -> bool:
        return not self.errors

    def message(self) -> str:
        return "\n".join(self.errors)

    def raise_for_errors(self):
        """Raise the aggregate error for this step if anything failed."""
        if self.errors:
            raise self.error_type(self.message(), self.errors)


@dataclass
class SerializeResult(Result):
    """Serialized schemas keyed by filename, plus marshal failures."""

    items: dict[str, str] = field(default_factory=dict)

    error_type: ClassVar[type[CRDSchemaError]] = SerializeError


@dataclass
class WriteResult(Result):
    """Paths that were written, plus one error line per failed file."""

    items: list[Path] = field(default_factory=list)

    error_type: ClassVar[type[CRDSchemaError]] = WriteError

    def message(self) -> str:
        lines = "".join(f"\t{error}\n" for error in self.errors)
        return f"Failed to write following files:\n{lines}"

    def raise_for_errors(self):
        if self.errors:
            raise WriteError(self.message(), self.errors, self.items)


# =============================================================================
# SOURCE READING
# =============================================================================


def is_url(value: str) -> bool:
    """Check whether the argument is an absolute URL rather than a file path."""
    try:
        parsed = urlparse(value)
    except ValueError:
        return False
    # Single-letter schemes are Windows drive letters
    return len(parsed.scheme) > 1


def fetch_crd(url: str, timeout: float | None = None) -> bytes:
    """Download a CRD manifest. Anything but a 200 response is an error."""
    try:
        response = requests.get(url, headers={"User-Agent": USER_AGENT}, timeout=timeout)
    except (requests.exceptions.MissingSchema, requests.exceptions.InvalidSchema, requests.exceptions.InvalidURL) as e:
        raise FetchError(f"failed to create request: {e}") from e
    except requests.RequestException as e:
        raise FetchError(f"failed to execute request: {e}") from e

    if response.status_code != 200:
        raise FetchError(f"{response.status_code} {response.reason}")

    return response.content


def read_crd(path_or_url: str, timeout: float | None = None) -> bytes:
    """Return the raw bytes of a CRD manifest from a local file or a URL."""
    if is_url(path_or_url):
        return fetch_crd(path_or_url, timeout=timeout)

    path = Path(path_or_url)
    if not path.exists():
        raise NotFoundError(f"{path_or_url} was not found")

    try:
        return path.read_bytes()
    except OSError as e:
        raise ReadError(f"failed to read file: {e}") from e


# =============================================================================
# CRD DECODING
# =============================================================================


class SafeLoaderWithTags(yaml.SafeLoader):
    """YAML loader that handles arbitrary tags by treating them as strings.

    Some CRDs (like kube-prometheus-stack) use special YAML tags like
    `tag:yaml.org,2002:value` that aren't handled by safe_load.
    """
    pass


# Unknown tags fall back to the plain node value
def _construct_undefined(self, node):
    if isinstance(node, yaml.ScalarNode):
        return self.construct_scalar(node)
    elif isinstance(node, yaml.SequenceNode):
        return self.construct_sequence(node)
    elif isinstance(node, yaml.MappingNode):
        return self.construct_mapping(node)
    return None


SafeLoaderWithTags.add_constructor(None, _construct_undefined)

# Timestamps stay strings, JSON has no date type
SafeLoaderWithTags.add_constructor("tag:yaml.org,2002:timestamp", SafeLoaderWithTags.construct_yaml_str)


@dataclass
class Version:
    """One served version of a v1 CRD and its schema, if it declares one."""

    name: str
    schema: dict | None = None


@dataclass
class StableCRD:
    """apiextensions.k8s.io/v1 CRD: every version carries its own schema."""

    group: str
    kind: str
    versions: list[Version] = field(default_factory=list)


@dataclass
class LegacyCRD:
    """apiextensions.k8s.io/v1beta1 CRD: one version and one shared schema."""

    group: str
    kind: str
    version: str
    schema: dict | None = None


CRD = StableCRD | LegacyCRD


def load_manifest(raw: bytes) -> dict:
    """Parse raw manifest bytes as JSON or YAML, whichever they look like."""
    try:
        text = raw.decode("utf-8")
    except UnicodeDecodeError as e:
        raise DecodeError(f"content is not valid UTF-8: {e}") from e

    if text.lstrip().startswith("{"):
        try:
            doc = json.loads(text)
        except json.JSONDecodeError as e:
            raise DecodeError(f"failed to parse JSON: {e}") from e
    else:
        doc = None
        try:
            # Only the first document of a multi-document stream is used
            for candidate in yaml.load_all(text, Loader=SafeLoaderWithTags):
                if candidate is not None:
                    doc = candidate
                    break
        except yaml.YAMLError as e:
            raise DecodeError(f"failed to parse YAML: {e}") from e

    if doc is None:
        raise DecodeError("no object found in content")
    if not isinstance(doc, dict):
        raise DecodeError(f"expected an object, got {type(doc).__name__}")
    return doc


def _openapi_schema(container: Any) -> dict | None:
    """Pull openAPIV3Schema out of a `schema`/`validation` block."""
    if not isinstance(container, dict):
        return None
    schema = container.get("openAPIV3Schema")
    return schema if isinstance(schema, dict) else None


def _require_string(value: Any, field_name: str) -> str:
    if not isinstance(value, str) or not value:
        raise DecodeError(f"missing required field {field_name}")
    return value


def decode_crd(raw: bytes) -> CRD:
    """Decode manifest bytes into a StableCRD or LegacyCRD."""
    doc = load_manifest(raw)

    api_version = doc.get("apiVersion")
    kind = doc.get("kind")
    if kind != CRD_KIND or api_version not in (STABLE_API_VERSION, LEGACY_API_VERSION):
        raise DecodeError(f"no kind {kind!r} is registered for version {api_version!r}")

    spec = doc.get("spec")
    if not isinstance(spec, dict):
        raise DecodeError("missing required field spec")

    group = _require_string(spec.get("group"), "spec.group")
    names = spec.get("names")
    resource_kind = _require_string(names.get("kind") if isinstance(names, dict) else None, "spec.names.kind")

    versions = spec.get("versions") or []
    if not isinstance(versions, list):
        raise DecodeError("spec.versions must be a list")
    for i, ver in enumerate(versions):
        if not isinstance(ver, dict):
            raise DecodeError(f"spec.versions[{i}] must be an object")
        _require_string(ver.get("name"), f"spec.versions[{i}].name")

    if api_version == STABLE_API_VERSION:
        return StableCRD(
            group=group,
            kind=resource_kind,
            versions=[Version(ver["name"], _openapi_schema(ver.get("schema"))) for ver in versions],
        )

    # v1beta1 allows spec.version to be omitted when spec.versions is set
    version = spec.get("version")
    if not version and versions:
        version = versions[0]["name"]
    return LegacyCRD(
        group=group,
        kind=resource_kind,
        version=_require_string(version, "spec.version"),
        schema=_openapi_schema(spec.get("validation")),
    )


# =============================================================================
# SCHEMA EXTRACTION
# =============================================================================


def schema_filename(kind: str, group_version: str) -> str:
    """
    Build the schema filename kubeconform expects for a kind and group/version.

    "Widget", "example.com/v1beta1" -> "widget-v1beta1-example.com.json"
    "Widget", "v1"                  -> "widget-v1.json"
    """
    group, sep, version = group_version.rpartition("/")
    version_parts = version.split(".")

    kind_suffix = "-" + version_parts[0].lower()
    if sep:
        kind_suffix += "-" + group.lower()

    return FILENAME_TEMPLATE.format(kind=kind.lower(), kind_suffix=kind_suffix)


def extract_schemas(crd: CRD) -> dict[str, dict]:
    """
    Collect the schemas of a decoded CRD keyed by output filename.

    Versions without a schema are skipped; a CRD without any schema is an error.
    """
    schemas = {}

    if isinstance(crd, StableCRD):
        for version in crd.versions:
            if version.schema is None:
                continue
            name = schema_filename(crd.kind, f"{crd.group}/{version.name}")
            schemas[name] = version.schema
    elif isinstance(crd, LegacyCRD):
        if crd.schema is not None:
            name = schema_filename(crd.kind, f"{crd.group}/{crd.version}")
            schemas[name] = crd.schema
    else:
        raise DecodeError(f"unknown CRD version {crd!r}")

    if not schemas:
        raise NoSchemaError("no validation specified")

    return schemas


def serialize_schemas(schemas: dict[str, dict]) -> SerializeResult:
    """Marshal every schema to indented JSON, collecting failures instead of stopping."""
    result = SerializeResult()

    for name, schema in schemas.items():
        try:
            result.items[name] = json.dumps(schema, indent=2, ensure_ascii=False, allow_nan=False)
        except (TypeError, ValueError) as e:
            result.errors.append(f"failed to marshal schema {name}: {e}")

    return result


# =============================================================================
# SCHEMA I/O
# =============================================================================


def resolve_output_dir(output_dir: str | Path) -> Path:
    """Make the output directory absolute, relative to the working directory."""
    path = Path(output_dir)
    if path.is_absolute():
        return path
    return Path.cwd() / path


def write_file(path: Path, content: str):
    """Replace whatever file is at `path` with `content`."""
    if path.exists() or path.is_symlink():
        try:
            path.unlink()
        except OSError as e:
            raise OSError(f"failed to remove file: {e}") from e

    try:
        path.parent.mkdir(parents=True, exist_ok=True)
    except OSError as e:
        raise OSError(f"failed to mkdir: {e}") from e

    try:
        path.write_bytes(content.encode("utf-8"))
    except OSError as e:
        raise OSError(f"failed to write file: {e}") from e


def write_schemas(output_dir: str | Path, files: dict[str, str]) -> WriteResult:
    """Write each filename -> JSON entry below output_dir, trying every file."""
    output_dir = resolve_output_dir(output_dir)
    result = WriteResult()

    for name, content in files.items():
        path = output_dir / name
        try:
            write_file(path, content)
        except OSError as e:
            result.errors.append(str(e))
            continue
        result.items.append(path)

    return result


def load_schema(path: Path) -> dict:
    """Load a JSON schema from disk."""
    with open(path) as f:
        return json.load(f)


# =============================================================================
# PIPELINE
# =============================================================================


def generate_strings(path_or_url: str, timeout: float | None = None) -> dict[str, str]:
    """Read, decode and extract a CRD, returning filename -> JSON text."""
    context = f"error on crd '{path_or_url}'"
    try:
        raw = read_crd(path_or_url, timeout=timeout)
        crd = decode_crd(raw)
        result = serialize_schemas(extract_schemas(crd))
        result.raise_for_errors()
    except CRDSchemaError as e:
        raise e.with_context(context) from e

    return result.items


def generate(path_or_url: str, output_dir: str | Path = "./", timeout: float | None = None) -> list[Path]:
    """
    Extract every schema of a CRD and write it into output_dir.

    Returns the written paths. If some files fail, the rest are still written
    and a WriteError listing every failure is raised with `files` set.
    """
    output_dir = resolve_output_dir(output_dir)
    schemas = generate_strings(path_or_url, timeout=timeout)

    result = write_schemas(output_dir, schemas)
    result.raise_for_errors()
    return result.items


