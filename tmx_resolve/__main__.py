#!/usr/bin/env python3

"""
TMX Resolve - print a summary of a resolved Tiled map

Usage:
    python -m tmx_resolve <map.tmx|map.tmj> [--strict] [--verbose]

Options:
    --strict    Fail on tiles whose GID belongs to no tileset
    --verbose   Show debug logging from the resolver
"""

import asyncio
import logging
import sys
from pathlib import Path

from .document import TiledMap, load_external_tilesets
from .errors import CompressionRequiresAsyncError, TiledError
from .parser import resolve_map, resolve_map_async
from .resolved import (
    ResolvedGroupLayer, ResolvedTileLayer, ResolvedImageLayer, ResolvedObjectLayer
)


def _print_layers(layers, depth=0):
    indent = "  " * (depth + 1)
    for layer in layers:
        if isinstance(layer, ResolvedTileLayer):
            if layer.infinite:
                detail = f"infinite, {len(layer.chunks)} chunk(s)"
            else:
                detail = f"{layer.width}x{layer.height}"
            filled = sum(1 for _ in layer.iter_tiles())
            print(f"{indent}[tiles]  {layer.name} ({detail}, {filled} non-empty)")
        elif isinstance(layer, ResolvedObjectLayer):
            print(f"{indent}[objects] {layer.name} ({len(layer.objects)} object(s))")
        elif isinstance(layer, ResolvedImageLayer):
            print(f"{indent}[image]  {layer.name} ({layer.image or 'no image'})")
        elif isinstance(layer, ResolvedGroupLayer):
            print(f"{indent}[group]  {layer.name}")
            _print_layers(layer.layers, depth + 1)


def main():
    args = [a for a in sys.argv[1:] if not a.startswith('--')]
    flags = {a for a in sys.argv[1:] if a.startswith('--')}

    if len(args) != 1:
        print(__doc__)
        sys.exit(1)

    logging.basicConfig(
        level=logging.DEBUG if '--verbose' in flags else logging.WARNING,
        format="%(levelname)s %(name)s: %(message)s"
    )

    source_path = Path(args[0])
    if not source_path.exists():
        print(f"Error: File '{source_path}' not found")
        sys.exit(1)

    strict = '--strict' in flags

    try:
        raw = TiledMap.load(source_path)
        external = load_external_tilesets(raw, source_path.parent)
        try:
            resolved = resolve_map(raw, external, strict=strict)
        except CompressionRequiresAsyncError:
            # Compressed tile data: decode through the async stream instead
            resolved = asyncio.run(resolve_map_async(raw, external, strict=strict))
    except TiledError as e:
        print(f"Error: {e}")
        sys.exit(1)

    print(f"\n=== {source_path.name} ===")
    print(f"Orientation: {resolved.orientation} ({resolved.renderorder})")
    print(f"Size: {resolved.width}x{resolved.height} tiles of "
          f"{resolved.tilewidth}x{resolved.tileheight}px"
          f"{' (infinite)' if resolved.infinite else ''}")

    print(f"\nTilesets: {len(resolved.tilesets)}")
    for tileset in resolved.tilesets:
        print(f"  {tileset.name}: firstgid={tileset.firstgid}, "
              f"{tileset.tilecount} tiles, {tileset.columns} columns")

    print("\nLayers:")
    _print_layers(resolved.layers)


if __name__ == "__main__":
    main()
