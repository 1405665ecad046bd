#!/usr/bin/env python3
"""
ProtoWrangler

Reconstructs the proto3 schema embedded in a downloaded web-client bundle.
The bundle builds every protocol message at runtime with calls such as
`X.internalSpec = {field: [1, e.TYPES.INT32 | e.FLAGS.REPEATED]}`; this script
reads those definitions back and writes them out as a `.proto` document.

Usage:
    python proto_wrangler.py --input <bundle.js> [--output <file.proto>] [--version <v>] [--dump-catalog <file.json>] [--no-check] [--verbose]

Arguments:
    --input, -i     : Path to the downloaded bundle source
    --output, -o    : Path of the .proto file to write (default: proto/whatsapp.proto)
    --version       : Client version recorded in the document header (default: latest)
    --dump-catalog  : Also write the resolved catalog as JSON to this path
    --no-check      : Skip re-parsing the generated document
    --verbose, -v   : Print debug information for every stage and list the resolved catalog
    --help, -h      : Show this help message

Environment variables PW_INPUT_FILE, PW_OUTPUT_FILE, PW_VERSION and
PW_VERBOSE override the corresponding arguments.

Example:
    python proto_wrangler.py --input bootstrap_qr.js --output proto/whatsapp.proto --version 2.3000.1012345
"""

import argparse
import os
import re
import sys
from datetime import datetime, timezone
from typing import List, Optional

from bundle_model import BundleModule, Catalog, ResolutionWarning
from bundle_transform_pipeline import run_bundle_transform_pipeline
from bundle_transforms.cross_reference_transform import CrossReferenceTransform
from bundle_transforms.identifier_catalog_transform import IdentifierCatalogTransform
from bundle_transforms.spec_resolution_transform import SchemaShapeError, SpecResolutionTransform
from catalog_debug import dump_catalog, format_catalog
from generators.proto3_generator import Proto3Generator
from js_ast import BundleParseError, parse_bundle
from module_selector import ModuleSelector, NoCandidateModulesError, module_name_of
from proto_checker import check_proto_text
from wrangler_config import WranglerConfig

DEFAULT_OUTPUT_FILE = os.path.join("proto", "whatsapp.proto")
DEFAULT_VERSION = "latest"

FATAL_ERRORS = (BundleParseError, NoCandidateModulesError, SchemaShapeError)


def apply_source_patches(source: str, config: WranglerConfig) -> str:
    for pattern, replacement in config.source_patches:
        source = re.sub(pattern, replacement, source)
    return source


def utc_timestamp() -> str:
    """Current time as an ISO-8601 UTC string with milliseconds, e.g. 2024-01-31T12:00:00.000Z."""
    return datetime.now(timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z")


def load_bundle_catalog(source: str, config: Optional[WranglerConfig] = None, verbose: bool = False) -> Catalog:
    """Patch and parse the bundle and wrap its candidate modules in an empty Catalog."""
    config = config or WranglerConfig()
    program = parse_bundle(apply_source_patches(source, config))
    statements = program.body
    candidates = ModuleSelector(config, verbose).select(statements, require=True)
    positions = {id(statement): index for index, statement in enumerate(statements)}
    modules = [
        BundleModule(module_name_of(statement, positions[id(statement)]), statement)
        for statement in candidates
    ]
    return Catalog(modules=modules)


def build_catalog(source: str, config: Optional[WranglerConfig] = None, verbose: bool = False) -> Catalog:
    """Run selection, cross-referencing, identifier cataloguing and spec resolution."""
    config = config or WranglerConfig()
    catalog = load_bundle_catalog(source, config, verbose)
    return run_bundle_transform_pipeline(catalog, [
        CrossReferenceTransform(verbose),
        IdentifierCatalogTransform(config, verbose),
        SpecResolutionTransform(config, verbose),
    ])


class ExtractionResult:
    def __init__(self, proto_text: str, catalog: Catalog, warnings: List[ResolutionWarning], entity_count: int):
        self.proto_text = proto_text
        self.catalog = catalog
        self.warnings = warnings
        self.entity_count = entity_count


def extract_proto_schema(
    source: str,
    version: str,
    config: Optional[WranglerConfig] = None,
    generated_on: Optional[str] = None,
    verbose: bool = False,
    check: bool = True,
) -> ExtractionResult:
    """
    Extract the proto3 schema from bundle source.

    Args:
        source: Complete bundle source text
        version: Client version recorded in the header
        config: Bundle conventions and output settings
        generated_on: Header timestamp (default: now, UTC)
        verbose: Whether to print debug information
        check: Re-parse the output and report problems as warnings

    Raises:
        BundleParseError, NoCandidateModulesError, SchemaShapeError
    """
    config = config or WranglerConfig()
    catalog = build_catalog(source, config, verbose)
    generator = Proto3Generator(catalog, version, generated_on or utc_timestamp(), config, verbose)
    proto_text = generator.generate()

    warnings = list(catalog.warnings) + list(generator.warnings)
    if check:
        report = check_proto_text(proto_text)
        for issue in report.issues:
            warnings.append(ResolutionWarning("proto_check", f"{issue.kind}: {issue}"))
    return ExtractionResult(proto_text, catalog, warnings, generator.entity_count)


class ProtoSchemaExtractor:
    """
    Reads a downloaded bundle, extracts its schema and writes the .proto file.
    """

    def __init__(
        self,
        input_file: str,
        output_file: str = DEFAULT_OUTPUT_FILE,
        version: str = DEFAULT_VERSION,
        config: Optional[WranglerConfig] = None,
        verbose: bool = False,
        check: bool = True,
    ):
        self.input_file = input_file
        self.output_file = output_file
        self.version = version
        self.config = config or WranglerConfig()
        self.verbose = verbose
        self.check = check
        self.source = None
        self.result = None

    def load(self) -> bool:
        """
        Read the bundle source.

        Returns:
            bool: True if the file was read, False otherwise
        """
        if not os.path.exists(self.input_file):
            print(f"Error: Input file '{self.input_file}' does not exist.", file=sys.stderr)
            return False
        try:
            with open(self.input_file, "r", encoding="utf-8") as f:
                self.source = f.read()
        except (OSError, UnicodeDecodeError) as e:
            print(f"Error: Could not read bundle '{self.input_file}': {e}", file=sys.stderr)
            return False
        return True

    def extract(self) -> ExtractionResult:
        if self.source is None:
            raise ValueError("No bundle loaded. Call load() first.")
        self.result = extract_proto_schema(self.source, self.version, self.config, verbose=self.verbose, check=self.check)
        return self.result

    def write_output(self) -> str:
        """Write the generated document, creating the output directory. Returns the absolute path."""
        if self.result is None:
            raise ValueError("Nothing extracted. Call extract() first.")
        path = os.path.abspath(self.output_file)
        os.makedirs(os.path.dirname(path), exist_ok=True)
        with open(path, "w", encoding="utf-8") as f:
            f.write(self.result.proto_text)
        return path


def parse_arguments(argv: Optional[List[str]] = None):
    parser = argparse.ArgumentParser(
        description='Extract the proto3 schema embedded in a web-client bundle'
    )
    parser.add_argument('--input', '-i', help='Path to the downloaded bundle source')
    parser.add_argument('--output', '-o', default=DEFAULT_OUTPUT_FILE, help='Path of the .proto file to write')
    parser.add_argument('--version', default=DEFAULT_VERSION, help='Client version recorded in the document header')
    parser.add_argument('--dump-catalog', help='Also write the resolved catalog as JSON to this path')
    parser.add_argument('--no-check', action='store_true', help='Skip re-parsing the generated document')
    parser.add_argument('--verbose', '-v', action='store_true', help='Enable verbose output for debugging')
    return parser.parse_args(argv)


def _env_flag(name: str, default: bool) -> bool:
    if name not in os.environ:
        return default
    return os.environ[name].strip().lower() in ("1", "true", "yes", "on")


def main(argv: Optional[List[str]] = None):
    """
    Main entry point of the script.
    """
    args = parse_arguments(argv)

    # Override with environment variables if set
    input_file = os.environ.get('PW_INPUT_FILE', args.input)
    output_file = os.environ.get('PW_OUTPUT_FILE', args.output)
    version = os.environ.get('PW_VERSION', args.version)
    verbose = _env_flag('PW_VERBOSE', args.verbose)

    if not input_file:
        print("Error: no input bundle given (use --input or PW_INPUT_FILE).", file=sys.stderr)
        sys.exit(1)

    extractor = ProtoSchemaExtractor(
        input_file,
        output_file,
        version,
        config=WranglerConfig.from_env(),
        verbose=verbose,
        check=not args.no_check,
    )
    if not extractor.load():
        sys.exit(1)

    try:
        result = extractor.extract()
    except FATAL_ERRORS as e:
        print(f"Error: {e}", file=sys.stderr)
        sys.exit(1)

    path = extractor.write_output()
    if verbose:
        print(format_catalog(result.catalog))
    if args.dump_catalog:
        dump_catalog(result.catalog, args.dump_catalog)
        print(f"Catalog written to {args.dump_catalog}")

    for warning in result.warnings:
        print(f"Warning: {warning}", file=sys.stderr)
    print(f"Wrote {result.entity_count} entities (version {version}) to {path}")


if __name__ == "__main__":
    main()
