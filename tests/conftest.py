"""
Pytest fixtures for crd-to-openapischema tests.
"""

import json
import tempfile
from pathlib import Path

import pytest
import yaml


@pytest.fixture
def temp_dir():
    """Provide a temporary directory for test outputs."""
    with tempfile.TemporaryDirectory() as tmpdir:
        yield Path(tmpdir)


@pytest.fixture
def widget_schema():
    """openAPIV3Schema of the Widget v1 version."""
    return {
        "type": "object",
        "properties": {
            "apiVersion": {"type": "string"},
            "kind": {"type": "string"},
            "metadata": {"type": "object"},
            "spec": {
                "type": "object",
                "properties": {
                    "size": {"type": "integer", "minimum": 1, "maximum": 100},
                    "color": {"type": "string", "enum": ["red", "green", "blue"]},
                },
                "required": ["size"],
            },
        },
    }


@pytest.fixture
def sample_crd_v1(widget_schema):
    """Sample CRD in v1 format (current standard)."""
    return {
        "apiVersion": "apiextensions.k8s.io/v1",
        "kind": "CustomResourceDefinition",
        "metadata": {"name": "widgets.example.io"},
        "spec": {
            "group": "example.io",
            "names": {"kind": "Widget", "plural": "widgets", "singular": "widget"},
            "scope": "Namespaced",
            "versions": [
                {
                    "name": "v1",
                    "served": True,
                    "storage": True,
                    "schema": {"openAPIV3Schema": widget_schema},
                },
                {
                    "name": "v1beta1",
                    "served": True,
                    "storage": False,
                    "schema": {
                        "openAPIV3Schema": {
                            "type": "object",
                            "properties": {"spec": {"type": "object", "properties": {"size": {"type": "integer"}}}},
                        }
                    },
                },
            ],
        },
    }


@pytest.fixture
def sample_crd_v1beta1():
    """Sample CRD in v1beta1 format (legacy)."""
    return {
        "apiVersion": "apiextensions.k8s.io/v1beta1",
        "kind": "CustomResourceDefinition",
        "metadata": {"name": "gadgets.example.io"},
        "spec": {
            "group": "example.io",
            "version": "v1",
            "names": {"kind": "Gadget", "plural": "gadgets"},
            "scope": "Namespaced",
            "validation": {
                "openAPIV3Schema": {
                    "type": "object",
                    "properties": {"spec": {"type": "object", "properties": {"replicas": {"type": "integer"}}}},
                }
            },
        },
    }


@pytest.fixture
def sample_crd_no_schema(sample_crd_v1):
    """v1 CRD where no version declares a schema."""
    for version in sample_crd_v1["spec"]["versions"]:
        del version["schema"]
    return sample_crd_v1


@pytest.fixture
def sample_crd_file(temp_dir, sample_crd_v1):
    """Write sample CRD to a YAML file and return path."""
    crd_file = temp_dir / "widget-crd.yaml"
    crd_file.write_text(yaml.dump(sample_crd_v1))
    return crd_file


@pytest.fixture
def sample_crd_json_file(temp_dir, sample_crd_v1):
    """Write sample CRD to a JSON file and return path."""
    crd_file = temp_dir / "widget-crd.json"
    crd_file.write_text(json.dumps(sample_crd_v1, indent=2))
    return crd_file


@pytest.fixture
def sample_legacy_crd_file(temp_dir, sample_crd_v1beta1):
    """Write the v1beta1 sample CRD to a YAML file and return path."""
    crd_file = temp_dir / "gadget-crd.yaml"
    crd_file.write_text(yaml.dump(sample_crd_v1beta1))
    return crd_file


@pytest.fixture
def output_dir(temp_dir):
    """Directory the schemas get written to (not created up front)."""
    return temp_dir / "schemas"
