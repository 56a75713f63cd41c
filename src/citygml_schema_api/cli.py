"""
CLI commands for exploring CityGML schema knowledge models.
"""

import argparse
import json
import logging
import sys
from pathlib import Path

from .config import ExtractorConfig, setup_logging
from .errors import FatalConfigurationError
from .models import EncodingModel, RelationshipType
from .pipeline import build_context, build_knowledge_base


def _load_knowledge_base(args):
    """Build the knowledge base for the command line options, or None on fatal errors."""
    setup_logging(logging.DEBUG if args.verbose else logging.INFO)
    config = ExtractorConfig.from_env()
    try:
        return build_knowledge_base(
            args.xsd_dir or config.xsd_dir,
            args.root_schema or config.root_schema,
            config,
        )
    except FatalConfigurationError as e:
        print(f"✗ {e}", file=sys.stderr)
        return None


def cmd_modules(args):
    """List extracted modules."""
    kb = _load_knowledge_base(args)
    if kb is None:
        return 1
    print(f"CityGML {kb.model.version} modules:")
    for module in kb.model.modules:
        print(f"  {module.name} ({len(module.classes)} classes) {module.namespace}")
    for name in kb.skipped:
        print(f"  ○ skipped: {name}")
    return 0


def cmd_objects(args):
    """List city objects with their LOD range."""
    kb = _load_knowledge_base(args)
    if kb is None:
        return 1
    for name, obj in sorted(kb.city_objects.items()):
        if args.module and obj.module != args.module:
            continue
        lod = f"LOD {obj.lod_info.min_lod}-{obj.lod_info.max_lod}" if obj.lod_info.levels else "no LOD"
        marker = " (abstract)" if obj.is_abstract else ""
        print(f"  {name} [{obj.module}] {lod}{marker}")
    return 0


def cmd_relationships(args):
    """List inferred relationships."""
    kb = _load_knowledge_base(args)
    if kb is None:
        return 1
    extractor = kb.relationship_extractor
    if args.type:
        results = extractor.get_relationships_by_type(args.type)
    else:
        results = extractor.get_relationships()
    if args.source:
        results = [rel for rel in results if rel.source == args.source]
    for rel in results:
        print(f"  {rel.type.value:<15} {rel.source} -> {rel.target} ({rel.name})")
    print(f"{len(results)} relationships")
    return 0


def cmd_context(args):
    """Assemble a ranked context for a query."""
    kb = _load_knowledge_base(args)
    if kb is None:
        return 1
    encoding = None
    if args.encoding:
        try:
            encoding = EncodingModel.from_dict(json.loads(Path(args.encoding).read_text()))
        except (OSError, ValueError) as e:
            print(f"✗ Invalid encoding document {args.encoding}: {e}", file=sys.stderr)
            return 1
    context = build_context(kb, args.query, args.threshold, encoding)
    if args.json:
        print(json.dumps(context.to_dict(), indent=2))
        return 0
    print(context.summary)
    for item in context.items[: args.limit]:
        print(f"  {item.type.value:<13} {item.name:<30} relevance={item.relevance:.2f}")
    return 0


def cmd_search(args):
    """Search class, codelist and enumeration names and descriptions."""
    kb = _load_knowledge_base(args)
    if kb is None:
        return 1
    results = kb.model.search(args.query, args.module)
    for result in results:
        print(f"  {result['type']:<12} {result['module']}:{result['name']}")
    print(f"{len(results)} results for '{args.query}'")
    return 0


def cmd_export(args):
    """Export the knowledge model as JSON."""
    kb = _load_knowledge_base(args)
    if kb is None:
        return 1
    payload = {
        "summary": kb.summary(),
        "model": kb.model.to_dict(),
        "city_objects": {name: obj.to_dict() for name, obj in kb.city_objects.items()},
        "relationships": [rel.to_dict() for rel in kb.relationship_extractor.get_relationships()],
        "integrity_rules": [rule.to_dict() for rule in kb.integrity_rules],
    }
    out = Path(args.output)
    out.parent.mkdir(parents=True, exist_ok=True)
    out.write_text(json.dumps(payload, indent=2))
    print(f"✓ Exported knowledge model to: {out}")
    return 0


def cmd_openapi(args):
    """Write the OpenAPI document of the REST service."""
    from .app import app

    out = Path(args.output)
    out.parent.mkdir(parents=True, exist_ok=True)
    out.write_text(json.dumps(app.openapi(), indent=2))
    print(f"✓ Exported OpenAPI document to: {out}")
    return 0


def main(argv=None):
    """Main CLI entry point."""
    parser = argparse.ArgumentParser(
        description="CityGML Schema Knowledge CLI",
        prog="citygml-schema"
    )
    parser.add_argument(
        "-v", "--verbose",
        action="store_true",
        help="Enable verbose logging"
    )
    parser.add_argument(
        "--xsd-dir",
        help="Directory holding the CityGML schemas (default: $CITYGML_XSD_DIR or ./xsds)"
    )
    parser.add_argument(
        "--root-schema",
        help="Root schema file name (default: $CITYGML_ROOT_SCHEMA or CityGML.xsd)"
    )

    subparsers = parser.add_subparsers(
        dest="command",
        help="Available commands"
    )

    # Modules command
    modules_parser = subparsers.add_parser(
        "modules",
        help="List modules of the conceptual model"
    )
    modules_parser.set_defaults(func=cmd_modules)

    # Objects command
    objects_parser = subparsers.add_parser(
        "objects",
        help="List city objects"
    )
    objects_parser.add_argument(
        "--module",
        help="Only list city objects of this module"
    )
    objects_parser.set_defaults(func=cmd_objects)

    # Relationships command
    relationships_parser = subparsers.add_parser(
        "relationships",
        help="List inferred relationships"
    )
    relationships_parser.add_argument(
        "--type",
        choices=[kind.value for kind in RelationshipType],
        help="Only list relationships of this kind"
    )
    relationships_parser.add_argument(
        "--source",
        help="Only list relationships from this type"
    )
    relationships_parser.set_defaults(func=cmd_relationships)

    # Context command
    context_parser = subparsers.add_parser(
        "context",
        help="Assemble a ranked context for a query"
    )
    context_parser.add_argument("query", help="Free-text query")
    context_parser.add_argument(
        "--threshold",
        type=float,
        default=None,
        help="Minimum relevance (default: $CITYGML_CONTEXT_THRESHOLD or 0.5)"
    )
    context_parser.add_argument(
        "--encoding",
        help="JSON file with encoding rules and examples"
    )
    context_parser.add_argument(
        "--limit",
        type=int,
        default=10,
        help="Number of items to print (default: 10)"
    )
    context_parser.add_argument(
        "--json",
        action="store_true",
        help="Print the full context as JSON"
    )
    context_parser.set_defaults(func=cmd_context)

    # Search command
    search_parser = subparsers.add_parser(
        "search",
        help="Search classes, codelists and enumerations"
    )
    search_parser.add_argument("query", help="Case-insensitive search text")
    search_parser.add_argument(
        "--module",
        help="Only search this module"
    )
    search_parser.set_defaults(func=cmd_search)

    # Export command
    export_parser = subparsers.add_parser(
        "export",
        help="Export the knowledge model as JSON"
    )
    export_parser.add_argument("output", help="Output JSON file")
    export_parser.set_defaults(func=cmd_export)

    # OpenAPI command
    openapi_parser = subparsers.add_parser(
        "openapi",
        help="Export the OpenAPI document of the REST service"
    )
    openapi_parser.add_argument("output", help="Output JSON file")
    openapi_parser.set_defaults(func=cmd_openapi)

    args = parser.parse_args(argv)

    if not hasattr(args, 'func'):
        parser.print_help()
        return 1

    return args.func(args)

if __name__ == "__main__":
    sys.exit(main())
