"""
Batch orchestration for the catalog compositing engine.

This module handles:
- Resolving source and reference photos for each selected product
- Running the base render and layout composite for one item at a time
- Threading one bounds accumulator through a batch, fresh per run
- Free pairing: many (left, right) photo pairs sharing one layout setup
- Per-item failure reporting, item deadlines and batch cancellation
- Preview handles for finished images
"""

import threading
import time
import uuid
from dataclasses import dataclass, field
from functools import partial
from typing import Any, Callable, Dict, List, Optional

from pydantic import BaseModel, Field, model_validator
from loguru import logger

from .assets import AssetLibrary
from .bounds import BoundsAccumulator, white_backdrop_ratio
from .catalog import ProductSpec, SideBySideLayout
from .composite import CompositeEngine
from .config import AppConfig, get_config
from .errors import (
    BatchCancelledError, CompositorError, InvalidBackdropError, ItemTimeoutError, SelectionError,
    create_error_recovery_suggestions,
)
from .render import BaseRenderer
from .selection import ServiceSelections, validate_selections
from .surface import decode_image, safe_decode


BackgroundRemover = Callable[[bytes], Optional[bytes]]

FREE_PAIR_PRODUCT_ID = 'free-pair'


class HandleAllocator:
    """Hands out opaque references to finished images, object-URL style."""

    def __init__(self, prefix: str = "mem://"):
        self.prefix = prefix
        self._store: Dict[str, bytes] = {}

    def create(self, data: bytes) -> str:
        handle = f"{self.prefix}{uuid.uuid4().hex}"
        self._store[handle] = data
        return handle

    def get(self, handle: str) -> Optional[bytes]:
        return self._store.get(handle)

    def revoke(self, handle: str) -> None:
        self._store.pop(handle, None)

    def revoke_all(self) -> None:
        if self._store:
            logger.debug(f"Releasing {len(self._store)} preview handles")
        self._store.clear()

    def __len__(self) -> int:
        return len(self._store)


@dataclass
class DeviceImages:
    """Front and back photos of the device being listed"""
    front: Optional[bytes] = None
    back: Optional[bytes] = None

    def side(self, name: str) -> Optional[bytes]:
        return self.front if name == 'front' else self.back


@dataclass
class FilePair:
    """One free-pairing item"""
    pair_id: str
    left: Optional[bytes]
    right: Optional[bytes]


@dataclass
class CompositeResult:
    source_id: str
    reference_preview_handle: str
    composite_preview_handle: str


@dataclass
class ItemFailure:
    item_id: str
    error: Dict[str, Any]


@dataclass
class BatchReport:
    results: List[CompositeResult] = field(default_factory=list)
    failures: List[ItemFailure] = field(default_factory=list)
    cancelled: bool = False
    missing_assets: List[str] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not self.failures and not self.cancelled


class FreePairParams(BaseModel):
    """Shared layout setup for a free-pairing batch"""
    left_width_ratio: float = Field(default=0.40, ge=0.34, le=0.52)
    left_offset_ratio: float = Field(default=0.04, ge=0.02, le=0.08)
    right_height_ratio: float = Field(default=0.80, ge=0.74, le=0.86)
    white_crop: bool = True
    cutout_left: bool = False
    cutout_right: bool = False

    @model_validator(mode='after')
    def _cutout_disables_white_crop(self):
        # A cutout left panel has no white backdrop left to crop
        if self.cutout_left:
            self.white_crop = False
        return self


class ItemDeadline:
    """Cooperative per-item time budget, checked between pipeline stages"""

    def __init__(self, item_id: str, timeout_s: float):
        self.item_id = item_id
        self.timeout_s = timeout_s
        self.started = time.monotonic()

    @property
    def elapsed(self) -> float:
        return time.monotonic() - self.started

    def check(self, stage: str) -> None:
        if self.timeout_s and self.elapsed > self.timeout_s:
            raise ItemTimeoutError(self.item_id, self.timeout_s, stage)


class BatchOrchestrator:
    """Runs selections or free pairs through render and composite, one item at a time."""

    def __init__(self,
                 catalog: Dict[str, ProductSpec],
                 config: Optional[AppConfig] = None,
                 assets: Optional[AssetLibrary] = None,
                 remove_background: Optional[BackgroundRemover] = None,
                 handles: Optional[HandleAllocator] = None):
        self.catalog = catalog
        self.config = config or get_config()
        self.assets = assets or AssetLibrary(self.config.ASSETS_DIR)
        self.remove_background = remove_background
        self.handles = handles or HandleAllocator()
        self.renderer = BaseRenderer(self.config, self.assets)
        self.compositor = CompositeEngine(self.config, self.assets)
        self.accumulator = BoundsAccumulator()

    # Batch loops

    def process_selection(self,
                          device_images: DeviceImages,
                          selections: ServiceSelections,
                          sku: Optional[str] = None,
                          on_item: Optional[Callable[[CompositeResult], None]] = None,
                          on_batch_complete: Optional[Callable[[BatchReport], None]] = None,
                          cancel_event: Optional[threading.Event] = None) -> BatchReport:
        """
        Build one composite per selected product, in selection order.

        Items run strictly one after another: later device renders reuse the
        bounds published by earlier ones in the same batch.
        """
        valid, reason = validate_selections(selections, self.catalog)
        if not valid:
            logger.warning(f"Selection did not validate: {reason}; failing items individually")

        items = [
            (product_id, partial(self._process_product, product_id, device_images, selections, sku, cancel_event))
            for product_id in selections.selected
        ]
        return self._run_batch('selection', items, on_item, on_batch_complete, cancel_event)

    def process_free_pairs(self,
                           pairs: List[FilePair],
                           params: Optional[FreePairParams] = None,
                           template: Optional[ProductSpec] = None,
                           sku: Optional[str] = None,
                           on_item: Optional[Callable[[CompositeResult], None]] = None,
                           on_batch_complete: Optional[Callable[[BatchReport], None]] = None,
                           cancel_event: Optional[threading.Event] = None) -> BatchReport:
        """Run independent (left, right) pairs through the same pipeline with one layout."""
        params = params or FreePairParams()
        product = self.free_pair_product(params, template)
        logger.info(f"Free pairing with {params.model_dump()}")

        items = [
            (pair.pair_id, partial(self._process_pair, pair, product, params, sku, cancel_event))
            for pair in pairs
        ]
        return self._run_batch('free-pairs', items, on_item, on_batch_complete, cancel_event)

    def _run_batch(self, mode, items, on_item, on_batch_complete, cancel_event) -> BatchReport:
        # Previous run's previews, bounds and asset cache never carry over
        self.handles.revoke_all()
        self.assets.clear()
        self.accumulator = BoundsAccumulator()

        report = BatchReport()
        logger.info(f"Starting {mode} batch with {len(items)} items")

        for index, (item_id, run_item) in enumerate(items):
            if cancel_event is not None and cancel_event.is_set():
                logger.warning(f"Batch cancelled before item {index + 1}/{len(items)}")
                report.cancelled = True
                break

            deadline = ItemDeadline(item_id, self.config.ITEM_TIMEOUT_S)
            try:
                result = run_item(deadline)
            except BatchCancelledError:
                logger.warning(f"Batch cancelled during {item_id}")
                report.cancelled = True
                break
            except CompositorError as e:
                logger.error(f"Item {item_id} failed: {e.message}")
                report.failures.append(ItemFailure(item_id, e.to_dict()))
                continue
            except Exception as e:
                logger.error(f"Item {item_id} failed unexpectedly: {e}")
                report.failures.append(ItemFailure(item_id, {
                    'error_type': type(e).__name__,
                    'message': str(e),
                    'details': {},
                    'suggestions': create_error_recovery_suggestions(e),
                }))
                continue

            report.results.append(result)
            logger.info(f"Item {index + 1}/{len(items)} done: {item_id} ({deadline.elapsed:.2f}s)")
            if on_item is not None:
                try:
                    on_item(result)
                except Exception as e:
                    logger.error(f"Item callback failed for {item_id}: {e}")

        logger.info(f"Batch finished: {len(report.results)} composites, "
                    f"{len(report.failures)} failures{', cancelled' if report.cancelled else ''}")
        report.missing_assets = sorted(self.assets.missing)
        if report.missing_assets:
            logger.warning(f"Skipped overlay steps for missing assets: {report.missing_assets}")
        if report.failures or report.missing_assets:
            context = {'failed_items': len(report.failures), 'missing_assets': len(report.missing_assets)}
            for suggestion in create_error_recovery_suggestions(CompositorError("batch had problems"), context):
                logger.info(f"Suggestion: {suggestion}")

        if on_batch_complete is not None:
            try:
                on_batch_complete(report)
            except Exception as e:
                logger.error(f"Batch completion callback failed: {e}")
        return report

    # Intake

    def check_device_photo(self, data: bytes, side: str = 'front') -> float:
        """
        Reject a device photo that is not shot on a clean white backdrop.

        Samples every 1000th pixel; more than WHITE_BACKDROP_MIN_RATIO of them
        must be near-white at WHITE_BG_THRESHOLD. Returns the white share.
        """
        image = decode_image(data, f"{side} photo")
        ratio = white_backdrop_ratio(image, self.config.WHITE_BG_THRESHOLD)
        if ratio <= self.config.WHITE_BACKDROP_MIN_RATIO:
            raise InvalidBackdropError(side, ratio, self.config.WHITE_BACKDROP_MIN_RATIO)
        logger.debug(f"{side} photo backdrop OK ({ratio:.0%} white)")
        return ratio

    # Single items

    def resolve_sources(self,
                        product: ProductSpec,
                        device_images: DeviceImages,
                        selections: ServiceSelections):
        """(source bytes, reference bytes) for a product."""
        side_photo = device_images.side(product.use_model_side)

        if product.needs_part_image:
            source = selections.accessory_for(product.id)
            if source is None and product.default_part_image:
                source = self.assets.fetch_bytes(product.default_part_image)
            if source is None:
                raise SelectionError(
                    f"No accessory photo for {product.id}",
                    details={'product_id': product.id, 'default_part_image': product.default_part_image},
                    suggestions=["Upload an accessory photo for this product"]
                )
            return source, side_photo

        if side_photo is None:
            raise SelectionError(
                f"No {product.use_model_side} device photo for {product.id}",
                details={'product_id': product.id, 'side': product.use_model_side},
                suggestions=[f"Provide the {product.use_model_side} photo of the device"]
            )

        source = side_photo
        if self.config.CUTOUT_DEVICE_IMAGES:
            source = self.cutout(side_photo)
        return source, side_photo

    def _process_product(self,
                         product_id: str,
                         device_images: DeviceImages,
                         selections: ServiceSelections,
                         sku: Optional[str],
                         cancel_event: Optional[threading.Event],
                         deadline: ItemDeadline) -> CompositeResult:
        product = self.catalog.get(product_id)
        if product is None:
            raise SelectionError(f"Unknown product: {product_id}", details={'product_id': product_id})
        if not product.implemented:
            raise SelectionError(f"Product {product_id} has no composite yet", details={'product_id': product_id})

        source_bytes, reference_bytes = self.resolve_sources(product, device_images, selections)

        deadline.check('decode')
        source = safe_decode(source_bytes, f"{product_id} source")
        reference = safe_decode(reference_bytes, f"{product_id} reference")

        deadline.check('render')
        base = self.renderer.render_base(
            source, product,
            accumulator=self.accumulator,
            cancel=cancel_event.is_set if cancel_event is not None else None,
        )

        # The reference shows the device, so it takes the device bounds
        reference_bounds = self.accumulator.current if product.needs_part_image else base.bounds

        deadline.check('compose')
        canvas = self.compositor.compose(product, base, reference,
                                         sku_text=sku, reference_bounds=reference_bounds)

        deadline.check('encode')
        return CompositeResult(
            source_id=product_id,
            reference_preview_handle=self.handles.create(reference_bytes or source_bytes),
            composite_preview_handle=self.handles.create(self.compositor.get_image_bytes(canvas)),
        )

    def _process_pair(self,
                      pair: FilePair,
                      product: ProductSpec,
                      params: FreePairParams,
                      sku: Optional[str],
                      cancel_event: Optional[threading.Event],
                      deadline: ItemDeadline) -> CompositeResult:
        left_bytes = self.cutout(pair.left) if params.cutout_left and pair.left else pair.left
        right_bytes = self.cutout(pair.right) if params.cutout_right and pair.right else pair.right

        deadline.check('decode')
        left = safe_decode(left_bytes, f"{pair.pair_id} left")
        right = safe_decode(right_bytes, f"{pair.pair_id} right")
        if left is None and right is None:
            raise SelectionError(f"Neither photo of {pair.pair_id} could be used",
                                 details={'pair_id': pair.pair_id})

        deadline.check('render')
        base = self.renderer.render_base(
            left, product,
            accumulator=self.accumulator,
            cancel=cancel_event.is_set if cancel_event is not None else None,
        )

        deadline.check('compose')
        canvas = self.compositor.compose(product, base, right, sku_text=sku)

        deadline.check('encode')
        return CompositeResult(
            source_id=pair.pair_id,
            reference_preview_handle=self.handles.create(right_bytes or left_bytes),
            composite_preview_handle=self.handles.create(self.compositor.get_image_bytes(canvas)),
        )

    def free_pair_product(self, params: FreePairParams, template: Optional[ProductSpec] = None) -> ProductSpec:
        """Side-by-side product built from the free-pairing parameters (badges from `template`)."""
        updates = {
            'left_width_canvas_ratio': params.left_width_ratio,
            'left_canvas_offset_ratio_x': params.left_offset_ratio,
            'right_height_ratio': params.right_height_ratio,
            'left_white_crop': params.white_crop,
        }
        if template is not None and isinstance(template.layout, SideBySideLayout):
            layout = template.layout.model_copy(update=updates)
        else:
            layout = SideBySideLayout(**updates)

        return ProductSpec(
            id=FREE_PAIR_PRODUCT_ID,
            title='Free pair',
            category='system',
            needs_part_image=True,
            layout=layout,
        )

    def cutout(self, data: bytes) -> bytes:
        """Run the background remover, keeping the original photo if it fails."""
        if self.remove_background is None:
            logger.debug("No background remover configured, using photo as is")
            return data

        try:
            result = self.remove_background(data)
        except Exception as e:
            logger.warning(f"Background removal failed, using original photo: {e}")
            return data

        return result or data


def create_orchestrator(catalog: Dict[str, ProductSpec],
                        config: Optional[AppConfig] = None,
                        assets: Optional[AssetLibrary] = None,
                        remove_background: Optional[BackgroundRemover] = None) -> BatchOrchestrator:
    """Factory function to create a BatchOrchestrator instance."""
    return BatchOrchestrator(catalog, config, assets, remove_background)
