#!/usr/bin/env python3
"""
Catalog Composer - Batch Runner

Builds catalog composites from the command line.

  python run_batch.py select --front front.png --back back.png screen-replacement back-cover
  python run_batch.py pairs --left part1.jpg part2.jpg --right device.png --left-width 0.42
"""

import argparse
import sys
from pathlib import Path

# Add the project root to Python path
project_root = Path(__file__).parent
sys.path.insert(0, str(project_root))

from loguru import logger

from catalog_composer import create_composer
from catalog_composer.orchestrator import BatchReport, DeviceImages, FilePair, FreePairParams
from catalog_composer.errors import CompositorError, SelectionError
from catalog_composer.selection import create_selection, require_valid, set_accessory
from catalog_composer.utils import safe_filename


def read_optional(path):
    """Read a file if a path was given"""
    if not path:
        return None
    return Path(path).read_bytes()


def parse_accessories(values):
    """PRODUCT_ID=PATH pairs into a dict"""
    accessories = {}
    for value in values or []:
        product_id, sep, path = value.partition('=')
        if not sep:
            raise argparse.ArgumentTypeError(f"Expected PRODUCT_ID=PATH, got {value!r}")
        accessories[product_id] = Path(path).read_bytes()
    return accessories


def write_report(orchestrator, report: BatchReport, output_dir: Path, prefix: str = '') -> None:
    """Write one PNG per composite and print a summary"""
    output_dir.mkdir(parents=True, exist_ok=True)

    for result in report.results:
        data = orchestrator.handles.get(result.composite_preview_handle)
        target = output_dir / safe_filename(f"{prefix}{result.source_id}.png")
        target.write_bytes(data)
        print(f"✅ {result.source_id} -> {target}")

    for failure in report.failures:
        print(f"❌ {failure.item_id}: {failure.error.get('message')}")
        for suggestion in failure.error.get('suggestions', []):
            print(f"   - {suggestion}")

    status = "cancelled" if report.cancelled else "done"
    print(f"\n{len(report.results)} composites, {len(report.failures)} failures ({status})")


def run_select(args) -> int:
    orchestrator = create_composer(args.env)

    device_images = DeviceImages(front=read_optional(args.front), back=read_optional(args.back))

    selections = create_selection(args.products)
    for product_id, data in parse_accessories(args.accessory).items():
        selections = set_accessory(selections, product_id, data)

    try:
        require_valid(selections, orchestrator.catalog)
    except SelectionError as e:
        print(f"❌ {e.message}")
        return 2

    if orchestrator.config.CHECK_DEVICE_BACKDROP and not args.skip_backdrop_check:
        for side in ('front', 'back'):
            data = device_images.side(side)
            if data is None:
                continue
            try:
                orchestrator.check_device_photo(data, side)
            except CompositorError as e:
                print(f"❌ {e.message}")
                return 2

    report = orchestrator.process_selection(device_images, selections, sku=args.sku)
    prefix = f"{args.sku}_" if args.sku else ''
    write_report(orchestrator, report, Path(args.output or orchestrator.config.OUTPUT_DIR), prefix)
    return 0 if report.ok else 1


def run_pairs(args) -> int:
    orchestrator = create_composer(args.env)

    lefts = [Path(p) for p in args.left]
    rights = [Path(p) for p in args.right]
    if len(rights) == 1:
        rights = rights * len(lefts)
    if len(rights) != len(lefts):
        print("❌ Give one --right photo, or one per --left photo")
        return 2

    pairs = [
        FilePair(pair_id=left.stem, left=left.read_bytes(), right=right.read_bytes())
        for left, right in zip(lefts, rights)
    ]

    params = FreePairParams(
        left_width_ratio=args.left_width,
        left_offset_ratio=args.left_offset,
        right_height_ratio=args.right_height,
        white_crop=not args.no_white_crop,
        cutout_left=args.cutout_left,
        cutout_right=args.cutout_right,
    )
    template = orchestrator.catalog.get(args.template) if args.template else None
    if args.template and template is None:
        logger.warning(f"Template {args.template} not in catalog, using plain layout")

    report = orchestrator.process_free_pairs(pairs, params, template=template, sku=args.sku)
    write_report(orchestrator, report, Path(args.output or orchestrator.config.OUTPUT_DIR))
    return 0 if report.ok else 1


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Build catalog composites")
    parser.add_argument('--env', help="Configuration environment (default: COMPOSER_ENV or development)")
    parser.add_argument('--output', help="Output directory (default: OUTPUT_DIR)")
    parser.add_argument('--sku', help="SKU label drawn on every composite")
    subparsers = parser.add_subparsers(dest='command', required=True)

    select = subparsers.add_parser('select', help="One composite per selected product")
    select.add_argument('products', nargs='+', help="Product ids from the catalog")
    select.add_argument('--front', help="Front photo of the device")
    select.add_argument('--back', help="Back photo of the device")
    select.add_argument('--accessory', action='append', metavar='PRODUCT_ID=PATH',
                        help="Accessory photo for a product (repeatable)")
    select.add_argument('--skip-backdrop-check', action='store_true',
                        help="Accept device photos without a white background")
    select.set_defaults(func=run_select)

    pairs = subparsers.add_parser('pairs', help="Free pairing of left/right photos")
    pairs.add_argument('--left', nargs='+', required=True, help="Left (accessory) photos")
    pairs.add_argument('--right', nargs='+', required=True, help="Right photo(s)")
    pairs.add_argument('--left-width', type=float, default=0.40, help="Left width ratio (0.34-0.52)")
    pairs.add_argument('--left-offset', type=float, default=0.04, help="Left offset ratio (0.02-0.08)")
    pairs.add_argument('--right-height', type=float, default=0.80, help="Right height ratio (0.74-0.86)")
    pairs.add_argument('--no-white-crop', action='store_true', help="Disable white-background crop")
    pairs.add_argument('--cutout-left', action='store_true', help="Remove the left background")
    pairs.add_argument('--cutout-right', action='store_true', help="Remove the right background")
    pairs.add_argument('--template', default='dual-preview-front', help="Catalog entry supplying badges")
    pairs.set_defaults(func=run_pairs)

    return parser


def main(argv=None) -> int:
    """Main entry point"""
    args = build_parser().parse_args(argv)

    print("=" * 60)
    print("Catalog Composer - Batch Runner")
    print("=" * 60)

    try:
        return args.func(args)
    except KeyboardInterrupt:
        print("\n🛑 Interrupted")
        return 130
    except Exception as e:
        logger.error(f"Batch run failed: {e}")
        print(f"❌ Error: {e}")
        return 1


if __name__ == "__main__":
    sys.exit(main())
