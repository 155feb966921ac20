"""
Command-line interface for npegen.

Usage:
    python -m npegen <command> [options]

Commands:
    generate    Generate specializations for annotated sources
    module      Generate sources plus the module registration fragment
    inspect     Print the dispatch table of one annotated source
"""

from __future__ import annotations

import argparse
import logging
import sys
from pathlib import Path
from typing import Optional

from .config import CodegenConfig
from .errors import NpeError
from .pipeline import FileResult, GenerationPipeline, find_sources


def collect_sources(config: CodegenConfig, inputs: Optional[list[Path]] = None) -> list[Path]:
    """Expand files and directories given on the command line."""
    if not inputs:
        return find_sources(config.source_dir_abs)

    sources = []
    for input_path in inputs:
        if input_path.is_file():
            sources.append(input_path)
        else:
            sources.extend(find_sources(input_path))
    return sources


def report(results: list[FileResult], verbose: bool = False) -> int:
    """Print per-file errors and the summary line."""
    success_count = 0
    error_count = 0

    for result in results:
        if result.ok:
            success_count += len(result.written)
            if verbose:
                for path in result.written:
                    print(f"  Generated: {path}")
        else:
            print(f"Error processing {result.source}: {result.error}", file=sys.stderr)
            error_count += 1

    print(f"\nGenerated {success_count} files, {error_count} errors")
    return 0 if error_count == 0 else 1


def generate_sources(
    config: CodegenConfig,
    inputs: Optional[list[Path]] = None,
    verbose: bool = False,
) -> int:
    """Generate per-file artifacts."""
    sources = collect_sources(config, inputs)
    if not sources:
        print("No annotated sources found.")
        return 1

    if verbose:
        print(f"Found {len(sources)} source files")

    pipeline = GenerationPipeline(config)
    return report(pipeline.generate(sources), verbose)


def generate_module(
    config: CodegenConfig,
    inputs: Optional[list[Path]] = None,
    module_name: Optional[str] = None,
    verbose: bool = False,
) -> int:
    """Generate per-file artifacts and the module fragment."""
    sources = collect_sources(config, inputs)
    if not sources:
        print("No annotated sources found.")
        return 1

    pipeline = GenerationPipeline(config)
    build = pipeline.build_module(sources, module_name)

    ret = report(build.results, verbose)
    print(f"Module {build.module_name}: {build.module_file.path}")
    return ret


def inspect_source(config: CodegenConfig, path: Path) -> int:
    """Print the dispatch table of one source."""
    pipeline = GenerationPipeline(config)
    try:
        unit = pipeline.expand_file(path)
    except NpeError as e:
        print(f"Error processing {path}: {e}", file=sys.stderr)
        return 1

    table = unit.table
    print(unit.spec.signature)
    print(f"{len(table)} specialization(s), dispatch on: "
          + (", ".join(table.arg_names[i] for i in table.dispatch_positions) or "nothing"))
    for combo in table:
        print(f"  [{combo.index}] {combo.identifier}: " + ", ".join(combo.tags))
    return 0


def main(argv: Optional[list[str]] = None) -> int:
    """Main CLI entry point."""
    parser = argparse.ArgumentParser(
        prog="npegen",
        description="Type-specialization generator for annotated numeric extensions",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # Generate all sources under [paths] source_dir
  npegen generate

  # Generate a single file into a custom directory
  npegen generate -i src/foo.cpp -o build/gen

  # Build a whole module
  npegen module -n mymodule src/

  # Show what a declaration expands to
  npegen inspect src/foo.cpp
""",
    )

    parser.add_argument(
        "--config", "-c",
        type=Path,
        help="Configuration file (npegen.toml)",
    )
    parser.add_argument(
        "--verbose", "-v",
        action="store_true",
        help="Verbose output",
    )
    parser.add_argument(
        "--no-overwrite",
        action="store_true",
        help="Keep existing generated files",
    )
    parser.add_argument(
        "--max-combinations",
        type=int,
        help="Expansion limit per function (0 disables it)",
    )

    subparsers = parser.add_subparsers(dest="command", required=True)

    # generate subcommand
    gen_parser = subparsers.add_parser(
        "generate",
        help="Generate specializations for annotated sources",
    )
    gen_parser.add_argument(
        "--input", "-i",
        type=Path,
        action="append",
        help="Input source file or directory (repeatable)",
    )
    gen_parser.add_argument(
        "--output", "-o",
        type=Path,
        help="Output directory",
    )

    # module subcommand
    mod_parser = subparsers.add_parser(
        "module",
        help="Generate sources and the module registration fragment",
    )
    mod_parser.add_argument(
        "sources",
        type=Path,
        nargs="*",
        help="Source files or directories",
    )
    mod_parser.add_argument(
        "--name", "-n",
        help="Extension module name",
    )
    mod_parser.add_argument(
        "--output", "-o",
        type=Path,
        help="Output directory",
    )

    # inspect subcommand
    inspect_parser = subparsers.add_parser(
        "inspect",
        help="Print the dispatch table of one annotated source",
    )
    inspect_parser.add_argument("source", type=Path, help="Annotated source file")

    args = parser.parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(levelname)s %(name)s: %(message)s",
    )

    try:
        # Load configuration
        config = CodegenConfig.load(args.config)

        # Apply CLI overrides
        if args.no_overwrite:
            config.generation.overwrite = False
        if args.max_combinations is not None:
            config.generation.max_combinations = args.max_combinations or None
            config.generation.validate()
        if getattr(args, "output", None):
            config.paths.output_dir = args.output.resolve()
    except NpeError as e:
        print(f"Configuration error: {e}", file=sys.stderr)
        return 2

    # Execute command
    if args.command == "generate":
        return generate_sources(config, args.input, verbose=args.verbose)
    elif args.command == "module":
        try:
            return generate_module(config, args.sources, args.name, verbose=args.verbose)
        except NpeError as e:
            print(f"Configuration error: {e}", file=sys.stderr)
            return 2
    elif args.command == "inspect":
        return inspect_source(config, args.source)

    return 1


if __name__ == "__main__":
    sys.exit(main())
