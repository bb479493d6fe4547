#!/usr/bin/env python3
"""
CRD to OpenAPI schema

Extracts the openAPIV3Schema of every version of a CustomResourceDefinition
and writes it as a standalone JSON file that kubeconform can look up:
{kind}-{version}-{group}.json

Options can also be set through the environment, prefixed with
CRDTOOPENAPISCHEMA_ (dashes become underscores), e.g.
CRDTOOPENAPISCHEMA_OUTPUT_DIR=schemas/

Usage:
    python crd_to_openapischema.py crds/widget.yaml --output-dir schemas/
    python crd_to_openapischema.py https://example.com/releases/v1.0.0/crds.yaml
"""

import argparse
import os
import sys

from crdschema import CRDSchemaError, WriteError, generate

ENV_PREFIX = "CRDTOOPENAPISCHEMA"


def env_key(option: str) -> str:
    """Environment variable name bound to a command-line option."""
    return f"{ENV_PREFIX}_{option.replace('-', '_').upper()}"


def build_parser(environ=None) -> argparse.ArgumentParser:
    if environ is None:
        environ = os.environ

    parser = argparse.ArgumentParser(
        prog="crd-to-openapischema",
        description="Extract the OpenAPI v3 schemas of a CRD into JSON files",
    )
    parser.add_argument("crd", help="Path or URL of the CustomResourceDefinition manifest")
    parser.add_argument(
        "--output-dir",
        default=environ.get(env_key("output-dir"), "./"),
        help=f"Directory to save the schemas in (env: {env_key('output-dir')})",
    )
    parser.add_argument("--verbose", action="store_true", help="Print every written file")
    return parser


def main(argv=None, environ=None):
    args = build_parser(environ).parse_args(argv)

    try:
        files = generate(args.crd, args.output_dir)
    except WriteError as e:
        if args.verbose:
            for path in e.files:
                print(f"  Wrote: {path}")
        print(e)
        sys.exit(1)
    except CRDSchemaError as e:
        print(e)
        sys.exit(1)

    if args.verbose:
        for path in files:
            print(f"  Wrote: {path}")


if __name__ == "__main__":
    main()
