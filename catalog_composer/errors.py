"""
Error handling for the catalog compositing engine.

Provides specific exception types for each failure mode of the pipeline.
Most of them are recovered locally by the step that raises them; the
batch orchestrator records the rest per item and keeps going.
"""

from typing import Dict, List, Any


class CompositorError(Exception):
    """Base exception for all compositing errors."""

    def __init__(self, message: str, details: Dict[str, Any] = None, suggestions: List[str] = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}
        self.suggestions = suggestions or []

    def to_dict(self) -> Dict[str, Any]:
        """Convert error to dictionary for reporting."""
        return {
            'error_type': self.__class__.__name__,
            'message': self.message,
            'details': self.details,
            'suggestions': self.suggestions
        }


class ConfigurationError(CompositorError):
    """Raised when configuration or the product catalog is invalid."""
    pass


class SelectionError(CompositorError):
    """Raised when a product selection cannot be processed."""
    pass


class InvalidBackdropError(SelectionError):
    """Raised when a device photo lacks a clean white backdrop."""

    def __init__(self, side: str, white_ratio: float, min_ratio: float):
        super().__init__(
            f"The {side} photo needs a clean white background",
            details={
                'side': side,
                'white_ratio': round(white_ratio, 3),
                'min_ratio': min_ratio
            },
            suggestions=[
                "Shoot the device on a plain white backdrop",
                "Use an uncropped photo rather than a cutout"
            ]
        )


class ProcessingError(CompositorError):
    """Raised when a processing step fails."""
    pass


class DecodeFailureError(ProcessingError):
    """Raised when image bytes cannot be decoded."""

    def __init__(self, source: str, reason: str = None):
        super().__init__(
            f"Could not decode image: {source}",
            details={
                'source': source,
                'reason': reason
            },
            suggestions=[
                "Use JPEG, PNG or WebP images",
                "Ensure the file is not truncated or corrupted",
                "Export the photo again from the original editor"
            ]
        )


class BoundsNotFoundError(ProcessingError):
    """Raised when no pixel qualifies as content."""

    def __init__(self, mode: str, threshold: int, size: tuple = None):
        super().__init__(
            f"No content pixels found ({mode} mode, threshold {threshold})",
            details={
                'mode': mode,
                'threshold': threshold,
                'size': size
            },
            suggestions=[
                "Check that the cutout is not fully transparent",
                "Lower the detection threshold"
            ]
        )


class OverlayAssetMissingError(ProcessingError):
    """Raised when a badge, decal, icon or film asset cannot be loaded."""

    def __init__(self, asset_ref: str, expected_path: str = None):
        super().__init__(
            f"Overlay asset not found: {asset_ref}",
            details={
                'asset_ref': asset_ref,
                'expected_path': expected_path
            },
            suggestions=[
                f"Ensure the asset exists at: {expected_path or asset_ref}",
                "Check the asset paths in catalog.yaml",
                "Verify ASSETS_DIR in settings.yaml"
            ]
        )


class CanvasUnavailableError(ProcessingError):
    """Raised when a drawing surface cannot be acquired."""

    def __init__(self, width: int, height: int, reason: str = None):
        super().__init__(
            f"Could not allocate a {width}x{height} drawing surface",
            details={
                'width': width,
                'height': height,
                'reason': reason
            }
        )


class ItemTimeoutError(ProcessingError):
    """Raised when a single batch item exceeds its time budget."""

    def __init__(self, item_id: str, timeout_s: float, stage: str = None):
        super().__init__(
            f"Item {item_id} exceeded {timeout_s:.1f}s (during {stage or 'processing'})",
            details={
                'item_id': item_id,
                'timeout_s': timeout_s,
                'stage': stage
            },
            suggestions=[
                "Reduce the resolution of the source photos",
                "Raise ITEM_TIMEOUT_S in settings.yaml"
            ]
        )


class BatchCancelledError(CompositorError):
    """Raised when a batch is cancelled while an item is in flight."""
    pass


def create_error_recovery_suggestions(error: Exception, context: Dict[str, Any] = None) -> List[str]:
    """Generate contextual recovery suggestions for any error."""
    suggestions = []

    if isinstance(error, CompositorError):
        suggestions.extend(error.suggestions)

    if context:
        if context.get('failed_items', 0) > 0:
            suggestions.append("Re-run only the failed products after fixing their inputs")

        if context.get('missing_assets', 0) > 0:
            suggestions.append("Check that badge and overlay assets are available")

    if not suggestions:
        suggestions = [
            "Try again with different photos",
            "Check that all required files exist",
            "Contact support if the problem persists"
        ]

    return suggestions
